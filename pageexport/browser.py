"""
Playwright adapter. Launches Chromium for one job and turns the page's
lifecycle callbacks into events on the job's channel.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from playwright.async_api import (
    Browser,
    BrowserContext,
    Download,
    Error as PlaywrightError,
    Page,
    Playwright,
    Request,
    Response,
    async_playwright,
)

from .app_logging import log_with_fields
from .context import JobContext
from .models import (
    DownloadAttempted,
    LoadFailed,
    LoadFinished,
    NavigationCompleted,
    PdfOptions,
    READY_CHANNEL,
    ReadySignal,
    RendererCrashed,
)

# Chromium's net error codes (net/base/net_error_list.h) for the names
# Playwright reports as ``net::ERR_*``.
NET_ERROR_CODES = {
    "ERR_IO_PENDING": -1,
    "ERR_FAILED": -2,
    "ERR_ABORTED": -3,
    "ERR_INVALID_ARGUMENT": -4,
    "ERR_INVALID_HANDLE": -5,
    "ERR_FILE_NOT_FOUND": -6,
    "ERR_TIMED_OUT": -7,
    "ERR_FILE_TOO_BIG": -8,
    "ERR_UNEXPECTED": -9,
    "ERR_ACCESS_DENIED": -10,
    "ERR_NOT_IMPLEMENTED": -11,
    "ERR_INSUFFICIENT_RESOURCES": -12,
    "ERR_OUT_OF_MEMORY": -13,
    "ERR_BLOCKED_BY_CLIENT": -20,
    "ERR_NETWORK_CHANGED": -21,
    "ERR_BLOCKED_BY_ADMINISTRATOR": -22,
    "ERR_BLOCKED_BY_RESPONSE": -27,
    "ERR_CONNECTION_CLOSED": -100,
    "ERR_CONNECTION_RESET": -101,
    "ERR_CONNECTION_REFUSED": -102,
    "ERR_CONNECTION_ABORTED": -103,
    "ERR_CONNECTION_FAILED": -104,
    "ERR_NAME_NOT_RESOLVED": -105,
    "ERR_INTERNET_DISCONNECTED": -106,
    "ERR_SSL_PROTOCOL_ERROR": -107,
    "ERR_ADDRESS_INVALID": -108,
    "ERR_ADDRESS_UNREACHABLE": -109,
    "ERR_CONNECTION_TIMED_OUT": -118,
    "ERR_CERT_COMMON_NAME_INVALID": -200,
    "ERR_CERT_DATE_INVALID": -201,
    "ERR_CERT_AUTHORITY_INVALID": -202,
    "ERR_INVALID_URL": -300,
    "ERR_DISALLOWED_URL_SCHEME": -301,
    "ERR_UNKNOWN_URL_SCHEME": -302,
    "ERR_TOO_MANY_REDIRECTS": -310,
    "ERR_UNSAFE_REDIRECT": -311,
    "ERR_UNSAFE_PORT": -312,
    "ERR_INVALID_RESPONSE": -320,
    "ERR_EMPTY_RESPONSE": -324,
}
UNKNOWN_ERROR_CODE = NET_ERROR_CODES["ERR_UNEXPECTED"]
NET_ERROR_RE = re.compile(r"net::(ERR_[A-Z0-9_]+)")

READY_SCRIPT = """
(() => {
    const forward = (event) => {
        let detail = null;
        try {
            detail = event.detail === undefined ? null : JSON.parse(JSON.stringify(event.detail));
        } catch (e) {}
        window[__CHANNEL__](event.type, detail);
    };
    // capture phase sees the event whether it was dispatched on window, document or an element
    window.addEventListener(__EVENT__, forward, true);
})();
"""


def parse_net_error(text: str) -> Tuple[int, str]:
    if "Download is starting" in text:
        return NET_ERROR_CODES["ERR_ABORTED"], "ERR_ABORTED"
    match = NET_ERROR_RE.search(text)
    if not match:
        first_line = text.strip().splitlines()[0] if text.strip() else "unknown error"
        return UNKNOWN_ERROR_CODE, first_line
    name = match.group(1)
    return NET_ERROR_CODES.get(name, UNKNOWN_ERROR_CODE), name


def build_ready_script(event_name: str, channel: str = READY_CHANNEL) -> str:
    return READY_SCRIPT.replace("__CHANNEL__", json.dumps(channel)).replace("__EVENT__", json.dumps(event_name))


class PlaywrightSession:
    def __init__(self, context: JobContext):
        self.context = context
        self.job = context.job
        self.logger = context.logger
        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.browser_context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self._navigating = False

    def launch_args(self) -> List[str]:
        # chrome crashes in docker without it, see puppeteer#1834
        args = ["--disable-dev-shm-usage"]
        options = self.job.browser
        if options.ignore_gpu_blocklist:
            args.append("--ignore-gpu-blocklist")
        if options.insecure:
            args.append("--allow-running-insecure-content")
        if options.security_opt:
            args.append(f"--security-opt={options.security_opt}")
        return args

    def launch_options(self) -> Dict[str, Any]:
        options = self.job.browser
        launch: Dict[str, Any] = {
            "headless": not self.job.debug,
            "args": self.launch_args(),
            "chromium_sandbox": options.sandbox,
        }
        if options.proxy:
            launch["proxy"] = {"server": options.proxy}
        return launch

    async def start(self) -> None:
        options = self.job.browser
        self._playwright = await async_playwright().start()
        self.browser = await self._playwright.chromium.launch(**self.launch_options())
        self.browser_context = await self.browser.new_context(
            viewport={"width": options.width, "height": options.height},
            device_scale_factor=self.job.zoom,
            ignore_https_errors=options.ignore_certificate_errors,
            accept_downloads=True,
        )
        self.page = await self.browser_context.new_page()
        if self.job.readiness.is_event:
            await self.page.expose_binding(READY_CHANNEL, self._on_ready)
            await self.page.add_init_script(script=build_ready_script(self.job.readiness.event_name))
        self.attach(self.page)

    def attach(self, page: Page) -> None:
        def on_load(loaded: Page):
            self.context.post(LoadFinished(loaded.url))

        def on_response(response: Response):
            request = response.request
            if request.is_navigation_request() and response.frame == page.main_frame:
                self.context.post(NavigationCompleted(response.url, response.status))

        def on_request_failed(request: Request):
            main_frame = request.is_navigation_request() and request.frame == page.main_frame
            if main_frame and self._navigating:
                # reported by open() once goto() raises
                return
            code, description = parse_net_error(request.failure or "")
            self.context.post(LoadFailed(code, description, request.url, main_frame))

        def on_crash(crashed: Page):
            self.context.post(RendererCrashed())

        async def on_download(download: Download):
            self.context.post(DownloadAttempted(download.url, download.suggested_filename))
            try:
                await download.cancel()
            except PlaywrightError as exc:
                log_with_fields(self.logger, logging.DEBUG, f"Download cancel failed: {exc}", url=download.url)

        page.on("load", on_load)
        page.on("response", on_response)
        page.on("requestfailed", on_request_failed)
        page.on("crash", on_crash)
        page.on("download", on_download)

    def _on_ready(self, source: Dict[str, Any], ident: Optional[str] = None, payload: Any = None) -> None:
        self.context.post(ReadySignal(READY_CHANNEL, ident, payload))

    async def open(self, uri: str) -> None:
        self._navigating = True
        try:
            await self.page.goto(uri, wait_until="commit", timeout=0)
        except PlaywrightError as exc:
            code, description = parse_net_error(str(exc))
            self.context.post(LoadFailed(code, description, uri, True))
        finally:
            self._navigating = False

    async def screenshot(self) -> bytes:
        return await self.page.screenshot(full_page=True, type="png")

    async def print_pdf(self, options: PdfOptions, zoom: float = 1) -> bytes:
        return await self.page.pdf(
            format=options.page_size,
            landscape=options.landscape,
            print_background=options.print_background,
            margin=options.margins.margin,
            scale=min(max(float(zoom), 0.1), 2.0),
        )

    async def wait_closed(self) -> None:
        if self.page is None or self.page.is_closed():
            return
        try:
            await self.page.wait_for_event("close", timeout=0)
        except PlaywrightError as exc:
            # the whole browser went away instead of just the page
            log_with_fields(self.logger, logging.DEBUG, f"Stopped waiting for window close: {exc}")

    async def close(self) -> None:
        try:
            if self.browser is not None:
                await self.browser.close()
        except PlaywrightError as exc:
            log_with_fields(self.logger, logging.DEBUG, f"Browser close failed: {exc}")
        finally:
            if self._playwright is not None:
                await self._playwright.stop()
            self._playwright = None
            self.browser = None
            self.browser_context = None
            self.page = None
