import logging
from pathlib import Path
from typing import Optional

from playwright.async_api import Error as PlaywrightError

from .app_logging import log_with_fields
from .context import JobContext
from .errors import ExportFailure
from .models import OutputFormat, ProcessOutcome

TIMED_LABEL = "Elapsed Time"


class ExportPipeline:
    """Capture the page once, write it to the destination and end the job."""

    def __init__(self, context: JobContext, session):
        self.context = context
        self.session = session
        self.logger = context.logger

    async def run(self) -> None:
        job = self.context.job
        try:
            data = await self.capture()
        except ExportFailure as exc:
            log_with_fields(self.logger, logging.ERROR, str(exc), uri=job.uri)
            self.finish(ProcessOutcome.FATAL, exc)
            return

        if self.context.done:
            return
        self.write(data)
        self.finish(ProcessOutcome.SUCCESS)

    async def capture(self) -> bytes:
        job = self.context.job
        try:
            if job.format is OutputFormat.IMAGE:
                data = await self.session.screenshot()
            else:
                data = await self.session.print_pdf(job.pdf, job.zoom)
        except PlaywrightError as exc:
            raise ExportFailure(f"{job.format.label} capture failed: {exc}") from exc
        if not data:
            raise ExportFailure(f"{job.format.label} capture returned no data")
        return data

    def write(self, data: bytes) -> bool:
        job = self.context.job
        target = Path(job.output).resolve()
        try:
            target.write_bytes(data)
        except OSError as exc:
            log_with_fields(self.logger, logging.ERROR, f"Unable to write {target}: {exc}", output=str(target))
            return False
        log_with_fields(
            self.logger,
            logging.INFO,
            f"Converted '{job.uri}' to {job.format.label}: '{job.output}'",
            uri=job.uri,
            output=str(target),
            size=len(data),
        )
        return True

    def finish(self, outcome: ProcessOutcome, error: Optional[ExportFailure] = None) -> None:
        elapsed = self.context.elapsed()
        log_with_fields(self.logger, logging.INFO, f"{TIMED_LABEL}: {elapsed:.3f}s", elapsed=round(elapsed, 3))
        self.context.terminate(outcome, error)
