"""Fatal/benign classification of page lifecycle events."""

import logging
from typing import Any

from .app_logging import log_with_fields
from .context import JobContext
from .errors import NavigationFatal
from .models import (
    DownloadAttempted,
    LoadFailed,
    NavigationCompleted,
    ProcessOutcome,
    RendererCrashed,
)

# Chromium net error codes -1 (IO_PENDING), -2 (FAILED) and -3 (ABORTED) are
# not real load failures: cancelled sub-resources, navigations turned into
# downloads, and the like.
BENIGN_ERROR_FLOOR = -3
HTTP_ERROR_FLOOR = 400


class NavigationMonitor:
    def __init__(self, context: JobContext):
        self.context = context
        self.logger = context.logger

    def handle(self, event: Any) -> bool:
        """Inspect one event; terminate the job and return True if it is fatal."""
        if isinstance(event, LoadFailed):
            return self._load_failed(event)
        if isinstance(event, NavigationCompleted):
            return self._navigation_completed(event)
        if isinstance(event, RendererCrashed):
            return self._abort(
                NavigationFatal(f"The renderer process has {event.reason}."),
                reason=event.reason,
            )
        if isinstance(event, DownloadAttempted):
            return self._abort(
                NavigationFatal(f"Unable to convert an octet-stream: download of {event.url} cancelled."),
                url=event.url,
                suggested_filename=event.suggested_filename,
            )
        return False

    def _load_failed(self, event: LoadFailed) -> bool:
        if event.code >= BENIGN_ERROR_FLOOR:
            log_with_fields(
                self.logger,
                logging.DEBUG,
                f"Ignoring load failure {event.code} {event.description} ({event.url})",
                code=event.code,
                url=event.url,
            )
            return False
        message = f"Failed to load: {event.code} {event.description} ({event.url})"
        if not event.main_frame:
            log_with_fields(self.logger, logging.ERROR, message, code=event.code, url=event.url, main_frame=False)
            return False
        return self._abort(NavigationFatal(message), code=event.code, url=event.url, main_frame=True)

    def _navigation_completed(self, event: NavigationCompleted) -> bool:
        if event.status < HTTP_ERROR_FLOOR:
            log_with_fields(self.logger, logging.DEBUG, f"Navigated to {event.url}", status=event.status)
            return False
        return self._abort(
            NavigationFatal(f"Failed to load {event.url} - got HTTP code {event.status}"),
            url=event.url,
            status=event.status,
        )

    def _abort(self, error: NavigationFatal, **fields: object) -> bool:
        log_with_fields(self.logger, logging.ERROR, str(error), **fields)
        self.context.terminate(ProcessOutcome.FATAL, error)
        return True
