"""
Readiness state machines. Each one consumes page events from the dispatch
loop and calls ``arbiter.trigger()`` once it decides the page can be captured.
"""

import asyncio
import logging
from typing import Any, Optional

from .app_logging import log_with_fields
from .arbiter import ExportArbiter
from .context import JobContext
from .models import LoadFinished, READY_CHANNEL, ReadinessState, ReadySignal, TimerElapsed

SETTLE_TIMER = "settle"
EVENT_TIMER = "event-wait"


class DelayReadiness:
    """Wait a fixed settling delay after the page reports ``load``."""

    def __init__(self, context: JobContext, arbiter: ExportArbiter):
        self.context = context
        self.arbiter = arbiter
        self.logger = context.logger
        self.delay = context.job.readiness.delay_ms / 1000.0
        self.state = ReadinessState.PENDING
        self._timer: Optional[asyncio.TimerHandle] = None
        self._generation = 0

    def start(self) -> None:
        pass

    def handle(self, event: Any) -> None:
        if self.state is not ReadinessState.PENDING:
            return
        if isinstance(event, LoadFinished):
            # a later load (redirect, reload) restarts the settling window
            self._cancel_timer()
            log_with_fields(
                self.logger,
                logging.DEBUG,
                f"Page loaded, settling for {self.delay:g}s",
                url=event.url,
            )
            self._generation += 1
            self._timer = self.context.start_timer(SETTLE_TIMER, self.delay, self._generation)
        elif isinstance(event, TimerElapsed) and event.name == SETTLE_TIMER:
            if self._timer is None or event.token != self._generation:
                # fired before a later load restarted the window
                log_with_fields(self.logger, logging.DEBUG, "Ignoring superseded settle timer", token=event.token)
                return
            self._timer = None
            self.state = ReadinessState.SIGNALED
            self.arbiter.trigger("settled")

    def close(self) -> None:
        self._cancel_timer()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class EventReadiness:
    """Wait for the page to announce readiness on the ready channel, bounded
    by a timeout after which the page is exported anyway."""

    def __init__(self, context: JobContext, arbiter: ExportArbiter, channel: str = READY_CHANNEL):
        self.context = context
        self.arbiter = arbiter
        self.logger = context.logger
        self.channel = channel
        self.timeout = context.job.readiness.event_timeout
        self.state = ReadinessState.PENDING
        self.listening = False
        self._handled = False
        self._timer: Optional[asyncio.TimerHandle] = None

    def start(self) -> None:
        self.listening = True
        self._timer = self.context.start_timer(EVENT_TIMER, self.timeout)
        log_with_fields(
            self.logger,
            logging.DEBUG,
            f"Waiting up to {self.timeout:g}s for '{self.context.job.readiness.event_name}'",
            channel=self.channel,
        )

    def handle(self, event: Any) -> None:
        if isinstance(event, ReadySignal) and event.channel == self.channel and self.listening:
            self._complete(ReadinessState.SIGNALED, event)
        elif isinstance(event, TimerElapsed) and event.name == EVENT_TIMER:
            self._complete(ReadinessState.TIMED_OUT, event)

    def _complete(self, state: ReadinessState, event: Any) -> None:
        if self._handled:
            return
        self._handled = True
        self.close()
        self.state = state
        if state is ReadinessState.SIGNALED:
            log_with_fields(self.logger, logging.INFO, "Received JS event", channel=self.channel, ident=event.ident)
        else:
            log_with_fields(
                self.logger,
                logging.WARNING,
                "Timed out waiting for JS event, exporting anyway...",
                channel=self.channel,
                timeout=self.timeout,
            )
        self.arbiter.trigger(state.value)

    def close(self) -> None:
        self.listening = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


def build_readiness(context: JobContext, arbiter: ExportArbiter):
    if context.job.readiness.is_event:
        return EventReadiness(context, arbiter)
    return DelayReadiness(context, arbiter)
