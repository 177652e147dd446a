import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from . import __version__
from .errors import UsageError
from .models import (
    BrowserOptions,
    DEFAULT_DELAY_MS,
    DEFAULT_EVENT_TIMEOUT_SECONDS,
    DEFAULT_HEIGHT,
    DEFAULT_READY_EVENT,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_WIDTH,
    Job,
    MarginType,
    OutputFormat,
    PAGE_SIZES,
    PdfOptions,
    ReadinessStrategy,
)

PASSTHROUGH_SCHEMES = ("http:", "https:", "chrome://", "file:")


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        raise UsageError(message)


def page_size(value: str) -> str:
    for size in PAGE_SIZES:
        if size.lower() == value.strip().lower():
            return size
    raise argparse.ArgumentTypeError(f"invalid page size {value!r} (choose from {', '.join(PAGE_SIZES)})")


def margin_type(value: str) -> MarginType:
    try:
        return MarginType(value.strip().lower())
    except ValueError:
        choices = ", ".join(m.value for m in MarginType)
        raise argparse.ArgumentTypeError(f"invalid margins {value!r} (choose from {choices})")


def readiness_strategy(value: str) -> ReadinessStrategy:
    try:
        return ReadinessStrategy.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(prog="pageexport", description="Render HTML to PDF or PNG")
    parser.add_argument("uri", nargs="?", help="URL or local file to render")
    parser.add_argument("output", nargs="?", help="Destination file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="YAML file with option defaults")
    parser.add_argument("--log-file", help="Also write JSON-lines logs to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    parser.add_argument("--debug", action="store_true", help="Show the browser window and never time out")
    parser.add_argument(
        "-T",
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help=f"Seconds before timing out (default: {DEFAULT_TIMEOUT_SECONDS})",
    )
    parser.add_argument(
        "-D",
        "--delay",
        type=int,
        default=DEFAULT_DELAY_MS,
        help=f"Milliseconds delay before saving (default: {DEFAULT_DELAY_MS})",
    )
    parser.add_argument(
        "-P",
        "--pagesize",
        type=page_size,
        default="A4",
        help="Page size of the generated PDF: A3, A4, A5, Legal, Letter or Tabloid (default: A4)",
    )
    parser.add_argument(
        "-M",
        "--margins",
        type=margin_type,
        default=MarginType.STANDARD.value,
        help="Margins to use when generating the PDF: standard, none or minimal (default: standard)",
    )
    parser.add_argument(
        "-Z",
        "--zoom",
        type=float,
        default=1,
        help="Zoom factor for higher scale rendering (default: 1, i.e. 100%%)",
    )
    parser.add_argument("--proxy", help="Use proxy to load remote HTML")
    parser.add_argument("--image", action="store_true", help="Export to PNG instead of PDF")
    parser.add_argument("--width", type=int, default=DEFAULT_WIDTH, help=f"Window width in pixels (default: {DEFAULT_WIDTH})")
    parser.add_argument(
        "--height", type=int, default=DEFAULT_HEIGHT, help=f"Window height in pixels (default: {DEFAULT_HEIGHT})"
    )
    parser.add_argument("--no-background", dest="background", action="store_false", help="Omit CSS backgrounds")
    parser.add_argument("--no-portrait", dest="portrait", action="store_false", help="Render in landscape")
    parser.add_argument("--no-insecure", dest="insecure", action="store_false", help="Do not allow insecure content")
    parser.add_argument("--ignore-certificate-errors", action="store_true", help="Ignore certificate errors")
    parser.add_argument("--ignore-gpu-blocklist", action="store_true", help="Enable the GPU in Docker environments")
    parser.add_argument(
        "--js-event",
        action="store_true",
        help=f"Wait for a JS event ({DEFAULT_READY_EVENT}) instead of a fixed delay",
    )
    parser.add_argument("--js-event-name", default=DEFAULT_READY_EVENT, help="Name of the DOM event to wait for")
    parser.add_argument(
        "--js-timeout",
        type=float,
        default=DEFAULT_EVENT_TIMEOUT_SECONDS,
        help=f"Timeout when waiting for the event (default: {DEFAULT_EVENT_TIMEOUT_SECONDS} seconds)",
    )
    parser.add_argument(
        "--readiness",
        type=readiness_strategy,
        help="Readiness strategy as delay:<ms> or event:<seconds>; overrides --delay and --js-event",
    )
    parser.add_argument("--security-opt", help="Chromium security options")
    parser.add_argument("--no-sandbox", dest="sandbox", action="store_false", help="Disable the Chromium sandbox")
    return parser


def option_actions(parser: argparse.ArgumentParser) -> Dict[str, argparse.Action]:
    skip = {"help", "version", "config", "uri", "output"}
    return {action.dest: action for action in parser._actions if action.dest not in skip}


def config_value(key: str, value: Any, action: argparse.Action) -> Any:
    """Check a config file value the way argparse checks the matching flag."""
    if value is None:
        return None
    if action.nargs == 0:
        if not isinstance(value, bool):
            raise UsageError(f"Config key `{key}` must be true or false, got {value!r}")
        return value
    if isinstance(value, (bool, dict, list)):
        raise UsageError(f"Config key `{key}` must be a single value, got {value!r}")
    if action.type is None:
        return str(value)
    try:
        return action.type(str(value))
    except (argparse.ArgumentTypeError, TypeError, ValueError) as exc:
        raise UsageError(f"Invalid value {value!r} for config key `{key}`: {exc}") from exc


def load_config(path: str, actions: Dict[str, argparse.Action]) -> Dict[str, Any]:
    config_path = Path(path).expanduser().resolve()
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise UsageError(f"Unable to read config {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise UsageError("Config root must be a mapping")

    values: Dict[str, Any] = {}
    for key, value in raw.items():
        dest = str(key).replace("-", "_")
        if dest not in actions:
            raise UsageError(f"Unknown key `{key}` in config")
        value = config_value(str(key), value, actions[dest])
        if dest == "log_file" and value is not None:
            value = str(config_path.parent / Path(value).expanduser())
        values[dest] = value
    return values


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    pre = _Parser(add_help=False)
    pre.add_argument("--config")
    known, _ = pre.parse_known_args(argv)
    if known.config:
        parser.set_defaults(**load_config(known.config, option_actions(parser)))
    return parser.parse_args(argv)


def filter_uri(uri: str) -> str:
    if uri.lower().startswith(PASSTHROUGH_SCHEMES):
        return uri
    return Path(uri).expanduser().resolve().as_uri()


def build_job(args: argparse.Namespace) -> Job:
    if not args.uri:
        raise UsageError("No URI given")
    if not args.output:
        raise UsageError("No output path given")
    if args.timeout <= 0:
        raise UsageError("--timeout must be > 0")
    if args.zoom <= 0:
        raise UsageError("--zoom must be > 0")
    if args.width <= 0 or args.height <= 0:
        raise UsageError("--width and --height must be > 0")

    if args.readiness is not None:
        readiness = args.readiness
        if readiness.is_event:
            readiness = ReadinessStrategy.event(readiness.event_timeout, args.js_event_name)
    elif args.js_event:
        readiness = ReadinessStrategy.event(args.js_timeout, args.js_event_name)
    else:
        readiness = ReadinessStrategy.delay(args.delay)
    if readiness.delay_ms < 0 or readiness.event_timeout <= 0:
        raise UsageError("readiness delay must be >= 0 and event timeout > 0")

    return Job(
        uri=filter_uri(args.uri),
        output=Path(args.output).expanduser(),
        format=OutputFormat.IMAGE if args.image else OutputFormat.PDF,
        pdf=PdfOptions(
            page_size=args.pagesize,
            margins=args.margins,
            landscape=not args.portrait,
            print_background=args.background,
        ),
        zoom=args.zoom,
        readiness=readiness,
        timeout=args.timeout,
        debug=args.debug,
        browser=BrowserOptions(
            width=args.width,
            height=args.height,
            proxy=args.proxy,
            ignore_certificate_errors=args.ignore_certificate_errors,
            ignore_gpu_blocklist=args.ignore_gpu_blocklist,
            insecure=args.insecure,
            sandbox=args.sandbox,
            security_opt=args.security_opt,
        ),
    )
