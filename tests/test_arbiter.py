from pathlib import Path
import asyncio
import unittest

from fakes import make_job
from pageexport.arbiter import ExportArbiter, ExportGate
from pageexport.context import JobContext
from pageexport.models import ProcessOutcome


class CountingPipeline:
    def __init__(self) -> None:
        self.runs = 0

    async def run(self) -> None:
        self.runs += 1


class ExportGateTest(unittest.TestCase):
    def test_fires_once(self) -> None:
        gate = ExportGate()
        self.assertFalse(gate.fired)
        self.assertTrue(gate.try_fire())
        self.assertFalse(gate.try_fire())
        self.assertFalse(gate.try_fire())
        self.assertTrue(gate.fired)


class ExportArbiterTest(unittest.IsolatedAsyncioTestCase):
    async def test_second_trigger_is_noop(self) -> None:
        context = JobContext(make_job(Path("out.pdf")))
        pipeline = CountingPipeline()
        arbiter = ExportArbiter(context, pipeline)

        self.assertTrue(arbiter.trigger("signaled"))
        self.assertFalse(arbiter.trigger("timed_out"))
        self.assertFalse(arbiter.trigger("deadline"))
        await arbiter.task

        self.assertEqual(pipeline.runs, 1)

    async def test_no_export_after_outcome(self) -> None:
        context = JobContext(make_job(Path("out.pdf")))
        pipeline = CountingPipeline()
        arbiter = ExportArbiter(context, pipeline)
        context.terminate(ProcessOutcome.FATAL)

        self.assertFalse(arbiter.trigger("settled"))
        await asyncio.sleep(0)

        self.assertIsNone(arbiter.task)
        self.assertEqual(pipeline.runs, 0)


if __name__ == "__main__":
    unittest.main()
