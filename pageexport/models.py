"""Job description, outcome enums and the page events the core reacts to."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_DELAY_MS = 200
DEFAULT_EVENT_TIMEOUT_SECONDS = 8
DEFAULT_READY_EVENT = "view-ready"
READY_CHANNEL = "VIEW_READY"
DEFAULT_WIDTH = 1024
DEFAULT_HEIGHT = 768

PAGE_SIZES = ("A3", "A4", "A5", "Legal", "Letter", "Tabloid")


class OutputFormat(str, Enum):
    PDF = "pdf"
    IMAGE = "image"

    @property
    def label(self) -> str:
        return "PDF" if self is OutputFormat.PDF else "PNG"


class MarginType(str, Enum):
    STANDARD = "standard"
    NONE = "none"
    MINIMAL = "minimal"

    @property
    def margin(self) -> Dict[str, str]:
        width = {"standard": "0.4in", "none": "0", "minimal": "0.2in"}[self.value]
        return {"top": width, "right": width, "bottom": width, "left": width}


class ReadinessState(str, Enum):
    PENDING = "pending"
    SIGNALED = "signaled"
    TIMED_OUT = "timed_out"


class ProcessOutcome(str, Enum):
    SUCCESS = "success"
    USAGE_ERROR = "usage_error"
    FATAL = "fatal"
    TIMEOUT = "timeout"

    @property
    def exit_code(self) -> int:
        return {"success": 0, "usage_error": 1, "fatal": 1, "timeout": 2}[self.value]


@dataclass(frozen=True)
class ReadinessStrategy:
    kind: str = "delay"
    delay_ms: int = DEFAULT_DELAY_MS
    event_timeout: float = DEFAULT_EVENT_TIMEOUT_SECONDS
    event_name: str = DEFAULT_READY_EVENT

    @classmethod
    def delay(cls, milliseconds: int = DEFAULT_DELAY_MS) -> "ReadinessStrategy":
        return cls(kind="delay", delay_ms=milliseconds)

    @classmethod
    def event(
        cls,
        timeout: float = DEFAULT_EVENT_TIMEOUT_SECONDS,
        event_name: str = DEFAULT_READY_EVENT,
    ) -> "ReadinessStrategy":
        return cls(kind="event", event_timeout=timeout, event_name=event_name)

    @classmethod
    def parse(cls, raw: str) -> "ReadinessStrategy":
        """Parse ``delay:<ms>`` or ``event:<timeout-seconds>``."""
        kind, _, value = raw.strip().partition(":")
        kind = kind.lower()
        if kind == "delay":
            return cls.delay(int(value) if value else DEFAULT_DELAY_MS)
        if kind == "event":
            return cls.event(float(value) if value else DEFAULT_EVENT_TIMEOUT_SECONDS)
        raise ValueError(f"Unknown readiness strategy: {raw!r}")

    @property
    def is_event(self) -> bool:
        return self.kind == "event"

    def __str__(self) -> str:
        if self.is_event:
            return f"event:{self.event_timeout:g}"
        return f"delay:{self.delay_ms}"


@dataclass(frozen=True)
class PdfOptions:
    page_size: str = "A4"
    margins: MarginType = MarginType.STANDARD
    landscape: bool = False
    print_background: bool = True


@dataclass(frozen=True)
class BrowserOptions:
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    proxy: Optional[str] = None
    ignore_certificate_errors: bool = False
    ignore_gpu_blocklist: bool = False
    insecure: bool = True
    sandbox: bool = True
    security_opt: Optional[str] = None


@dataclass(frozen=True)
class Job:
    uri: str
    output: Path
    format: OutputFormat = OutputFormat.PDF
    pdf: PdfOptions = field(default_factory=PdfOptions)
    zoom: float = 1
    readiness: ReadinessStrategy = field(default_factory=ReadinessStrategy)
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    debug: bool = False
    browser: BrowserOptions = field(default_factory=BrowserOptions)


# Events posted by the browser adapter and by timers.


@dataclass(frozen=True)
class LoadFailed:
    code: int
    description: str
    url: str
    main_frame: bool


@dataclass(frozen=True)
class NavigationCompleted:
    url: str
    status: int


@dataclass(frozen=True)
class RendererCrashed:
    reason: str = "crashed"


@dataclass(frozen=True)
class DownloadAttempted:
    url: str
    suggested_filename: str = ""


@dataclass(frozen=True)
class LoadFinished:
    url: str


@dataclass(frozen=True)
class ReadySignal:
    channel: str
    ident: Optional[str] = None
    payload: Any = None


@dataclass(frozen=True)
class TimerElapsed:
    name: str
    token: int = 0
