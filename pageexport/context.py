import asyncio
import logging
import time
from typing import Any, Callable, Coroutine, List, Optional

from .app_logging import LOGGER_NAME, log_with_fields
from .errors import PageExportError
from .models import Job, ProcessOutcome, TimerElapsed


class JobContext:
    """Everything one export run shares: the job, its event channel, its timers
    and the single outcome the process will exit with.

    Must be created inside a running event loop.
    """

    def __init__(self, job: Job, logger: Optional[logging.Logger] = None):
        self.job = job
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.loop = asyncio.get_running_loop()
        self.events: "asyncio.Queue[Any]" = asyncio.Queue()
        self.outcome: "asyncio.Future[ProcessOutcome]" = self.loop.create_future()
        self.error: Optional[PageExportError] = None
        self.started = time.monotonic()
        self._timers: List[asyncio.TimerHandle] = []

    @property
    def done(self) -> bool:
        return self.outcome.done()

    def elapsed(self) -> float:
        return time.monotonic() - self.started

    def post(self, event: Any) -> None:
        if self.done:
            return
        self.events.put_nowait(event)

    def start_timer(self, name: str, delay: float, token: int = 0) -> asyncio.TimerHandle:
        """Post ``TimerElapsed(name, token)`` on the event channel after ``delay`` seconds.

        The token lets a consumer that restarts a timer tell the current one
        apart from an earlier one whose event was already queued.
        """
        return self.call_later(delay, self.post, TimerElapsed(name, token))

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        handle = self.loop.call_later(max(delay, 0), callback, *args)
        self._timers.append(handle)
        return handle

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run ``coro`` as a task; an unexpected exception in it ends the job as fatal."""
        task = self.loop.create_task(coro)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        exc = task.exception()
        self.logger.error("Unexpected error: %s", exc, exc_info=exc)
        self.terminate(ProcessOutcome.FATAL, PageExportError(str(exc)))

    def cancel_timers(self) -> None:
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()

    def terminate(self, outcome: ProcessOutcome, error: Optional[PageExportError] = None) -> bool:
        """Decide the process outcome. Only the first call has any effect."""
        if self.done:
            log_with_fields(
                self.logger,
                logging.DEBUG,
                f"Ignoring late outcome {outcome.value}",
                outcome=outcome.value,
                decided=self.outcome.result().value,
            )
            return False
        self.error = error
        self.outcome.set_result(outcome)
        self.cancel_timers()
        return True
