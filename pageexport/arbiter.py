import asyncio
import logging
import threading
from typing import Optional

from .app_logging import log_with_fields
from .context import JobContext


class ExportGate:
    """One-shot flag. ``try_fire`` is a compare-and-set: exactly one caller
    ever sees True."""

    def __init__(self):
        self._lock = threading.Lock()
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def try_fire(self) -> bool:
        with self._lock:
            if self._fired:
                return False
            self._fired = True
            return True


class ExportArbiter:
    def __init__(self, context: JobContext, pipeline):
        self.context = context
        self.pipeline = pipeline
        self.gate = ExportGate()
        self.task: Optional[asyncio.Task] = None

    def trigger(self, reason: str = "") -> bool:
        if not self.gate.try_fire():
            log_with_fields(self.context.logger, logging.DEBUG, "Export already triggered", reason=reason)
            return False
        if self.context.done:
            return False
        log_with_fields(self.context.logger, logging.DEBUG, f"Exporting ({reason})", reason=reason)
        self.task = self.context.spawn(self.pipeline.run())
        return True

    def cancel(self) -> None:
        if self.task is not None and not self.task.done():
            self.task.cancel()
