from pathlib import Path
import asyncio
import unittest

from fakes import make_job
from pageexport.context import JobContext
from pageexport.models import (
    LoadFinished,
    ReadinessState,
    ReadinessStrategy,
    ReadySignal,
    READY_CHANNEL,
    TimerElapsed,
)
from pageexport.readiness import (
    DelayReadiness,
    EVENT_TIMER,
    EventReadiness,
    SETTLE_TIMER,
    build_readiness,
)


class RecordingArbiter:
    def __init__(self) -> None:
        self.reasons = []

    def trigger(self, reason: str = "") -> bool:
        self.reasons.append(reason)
        return len(self.reasons) == 1


class DelayReadinessTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.context = JobContext(make_job(Path("out.pdf"), readiness=ReadinessStrategy.delay(10)))
        self.arbiter = RecordingArbiter()
        self.readiness = DelayReadiness(self.context, self.arbiter)

    async def test_timer_starts_on_load(self) -> None:
        self.readiness.handle(TimerElapsed(SETTLE_TIMER))
        self.assertEqual(self.arbiter.reasons, [])

        self.readiness.handle(LoadFinished("file:///tmp/page.html"))
        event = await asyncio.wait_for(self.context.events.get(), timeout=1)
        self.assertEqual(event, TimerElapsed(SETTLE_TIMER, 1))

        self.readiness.handle(event)
        self.assertEqual(self.readiness.state, ReadinessState.SIGNALED)
        self.assertEqual(self.arbiter.reasons, ["settled"])

    async def test_superseded_timer_does_not_trigger(self) -> None:
        self.readiness.handle(LoadFinished("file:///tmp/page.html"))
        stale = await asyncio.wait_for(self.context.events.get(), timeout=1)

        # a redirect finishes loading while the first timer event is still queued
        self.readiness.handle(LoadFinished("file:///tmp/next.html"))
        self.readiness.handle(stale)
        self.assertEqual(self.readiness.state, ReadinessState.PENDING)
        self.assertEqual(self.arbiter.reasons, [])

        current = await asyncio.wait_for(self.context.events.get(), timeout=1)
        self.assertEqual(current, TimerElapsed(SETTLE_TIMER, 2))
        self.readiness.handle(current)
        self.assertEqual(self.readiness.state, ReadinessState.SIGNALED)
        self.assertEqual(self.arbiter.reasons, ["settled"])

    async def test_signaled_is_terminal(self) -> None:
        self.readiness.handle(LoadFinished("file:///tmp/page.html"))
        event = await asyncio.wait_for(self.context.events.get(), timeout=1)
        self.readiness.handle(event)
        self.readiness.handle(LoadFinished("file:///tmp/page.html"))
        self.readiness.handle(event)

        self.assertEqual(self.arbiter.reasons, ["settled"])

    async def test_close_cancels_timer(self) -> None:
        self.readiness.handle(LoadFinished("file:///tmp/page.html"))
        self.readiness.close()
        await asyncio.sleep(0.05)

        self.assertTrue(self.context.events.empty())
        self.assertEqual(self.readiness.state, ReadinessState.PENDING)


class EventReadinessTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.context = JobContext(make_job(Path("out.pdf"), readiness=ReadinessStrategy.event(5)))
        self.arbiter = RecordingArbiter()
        self.readiness = EventReadiness(self.context, self.arbiter)

    async def test_signal_then_timeout_triggers_once(self) -> None:
        self.readiness.start()
        self.assertTrue(self.readiness.listening)

        self.readiness.handle(ReadySignal(READY_CHANNEL, "view-ready", {"any": "payload"}))
        self.readiness.handle(TimerElapsed(EVENT_TIMER))

        self.assertFalse(self.readiness.listening)
        self.assertEqual(self.readiness.state, ReadinessState.SIGNALED)
        self.assertEqual(self.arbiter.reasons, ["signaled"])

    async def test_timeout_then_signal_triggers_once(self) -> None:
        self.readiness.start()
        with self.assertLogs(self.context.logger, level="WARNING"):
            self.readiness.handle(TimerElapsed(EVENT_TIMER))
        self.readiness.handle(ReadySignal(READY_CHANNEL))

        self.assertEqual(self.readiness.state, ReadinessState.TIMED_OUT)
        self.assertEqual(self.arbiter.reasons, ["timed_out"])

    async def test_other_channel_is_ignored(self) -> None:
        self.readiness.start()
        self.readiness.handle(ReadySignal("SOMETHING_ELSE"))
        self.readiness.handle(LoadFinished("file:///tmp/page.html"))

        self.assertEqual(self.readiness.state, ReadinessState.PENDING)
        self.assertEqual(self.arbiter.reasons, [])
        self.readiness.close()

    async def test_signal_before_listening_is_ignored(self) -> None:
        self.readiness.handle(ReadySignal(READY_CHANNEL))
        self.assertEqual(self.arbiter.reasons, [])

    async def test_signal_cancels_bound_timer(self) -> None:
        context = JobContext(make_job(Path("out.pdf"), readiness=ReadinessStrategy.event(0.02)))
        readiness = EventReadiness(context, self.arbiter)
        readiness.start()
        readiness.handle(ReadySignal(READY_CHANNEL))
        await asyncio.sleep(0.05)

        self.assertTrue(context.events.empty())


class BuildReadinessTest(unittest.IsolatedAsyncioTestCase):
    async def test_strategy_selection(self) -> None:
        delay = JobContext(make_job(Path("out.pdf")))
        event = JobContext(make_job(Path("out.pdf"), readiness=ReadinessStrategy.event(3)))

        self.assertIsInstance(build_readiness(delay, RecordingArbiter()), DelayReadiness)
        self.assertIsInstance(build_readiness(event, RecordingArbiter()), EventReadiness)


if __name__ == "__main__":
    unittest.main()
