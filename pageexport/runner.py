import asyncio
import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError

from .app_logging import log_with_fields
from .arbiter import ExportArbiter
from .context import JobContext
from .errors import ExportFailure
from .models import ProcessOutcome
from .navigation import NavigationMonitor
from .pipeline import ExportPipeline
from .readiness import build_readiness


class JobRunner:
    """Drive one job: dispatch page events to the navigation monitor and the
    readiness source until an outcome is decided, with a global deadline on top."""

    def __init__(self, context: JobContext, session):
        self.context = context
        self.session = session
        self.logger = context.logger
        self.monitor = NavigationMonitor(context)
        self.pipeline = ExportPipeline(context, session)
        self.arbiter = ExportArbiter(context, self.pipeline)
        self.readiness = build_readiness(context, self.arbiter)
        self._dispatcher: Optional[asyncio.Task] = None
        self._navigation: Optional[asyncio.Task] = None

    async def run(self) -> ProcessOutcome:
        job = self.context.job
        log_with_fields(
            self.logger,
            logging.DEBUG,
            f"Exporting '{job.uri}' as {job.format.label} ({job.readiness})",
            uri=job.uri,
            output=str(job.output),
            readiness=str(job.readiness),
        )
        if not job.debug:
            self.context.call_later(job.timeout, self._deadline_exceeded)

        try:
            if not await self._start_session():
                return await self.context.outcome

            self._dispatcher = self.context.spawn(self._dispatch())
            self.readiness.start()
            self._navigation = self.context.spawn(self.session.open(job.uri))
            outcome = await self.context.outcome
            if job.debug and outcome is ProcessOutcome.SUCCESS:
                self.logger.info("Debug mode: close the browser window to exit")
                await self.session.wait_closed()
            return outcome
        finally:
            await self._shutdown()

    async def _start_session(self) -> bool:
        # launching can hang past the deadline, so race it against the outcome
        starting = asyncio.ensure_future(self.session.start())
        await asyncio.wait({starting, self.context.outcome}, return_when=asyncio.FIRST_COMPLETED)
        if not starting.done():
            starting.cancel()
            await asyncio.gather(starting, return_exceptions=True)
            return False
        try:
            starting.result()
        except PlaywrightError as exc:
            error = ExportFailure(f"Unable to start the browser: {exc}")
            log_with_fields(self.logger, logging.ERROR, str(error))
            self.context.terminate(ProcessOutcome.FATAL, error)
            return False
        return not self.context.done

    async def _dispatch(self) -> None:
        while not self.context.done:
            event = await self.context.events.get()
            if self.monitor.handle(event) or self.context.done:
                break
            self.readiness.handle(event)

    def _deadline_exceeded(self) -> None:
        label = self.context.job.format.label
        log_with_fields(
            self.logger,
            logging.ERROR,
            f"{label} generation timed out.",
            timeout=self.context.job.timeout,
            readiness=self.readiness.state.value,
        )
        self.context.terminate(ProcessOutcome.TIMEOUT)

    async def _shutdown(self) -> None:
        self.context.cancel_timers()
        self.readiness.close()
        self.arbiter.cancel()
        tasks = [t for t in (self._dispatcher, self._navigation, self.arbiter.task) if t is not None]
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.session.close()


async def run_job(context: JobContext, session=None) -> ProcessOutcome:
    if session is None:
        from .browser import PlaywrightSession

        session = PlaywrightSession(context)
    return await JobRunner(context, session).run()
