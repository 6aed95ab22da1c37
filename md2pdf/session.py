"""Browser-backed document sessions.

The rest of the package only talks to :class:`DocumentSession`; the
Playwright specifics live in :class:`PlaywrightSession` and
:class:`BrowserLauncher`.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional, Protocol

from playwright.async_api import async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .console import Console
from .dependencies import find_available_browser
from .errors import BrowserLaunchError, RenderTimeoutError

LAUNCH_ARGS = [
    '--disable-dev-shm-usage',  # Use /tmp instead of /dev/shm (prevents OOM crashes)
    '--disable-gpu',             # No GPU in headless mode
    '--no-sandbox',              # Required in some environments
]

PAGE_NUMBER_FOOTER = (
    '<div style="font-size: 10px; text-align: center; width: 100%; margin: 0 auto;">'
    '<span class="pageNumber"></span></div>'
)


class DocumentSession(Protocol):
    """A loaded page that scripts can be evaluated in."""

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def wait_for(self, script: str, timeout_ms: int, poll_ms: int) -> None: ...

    async def add_style(self, css: str) -> None: ...

    async def emulate_media(self, media: str) -> None: ...

    async def to_pdf(self, path: Path, options: dict) -> None: ...


class PlaywrightSession:
    """:class:`DocumentSession` over a Playwright page."""

    def __init__(self, page):
        self.page = page

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self.page.evaluate(script, arg)

    async def wait_for(self, script: str, timeout_ms: int, poll_ms: int) -> None:
        try:
            await self.page.wait_for_function(script, timeout=timeout_ms, polling=poll_ms)
        except PlaywrightTimeoutError as e:
            raise RenderTimeoutError(timeout_ms) from e

    async def add_style(self, css: str) -> None:
        await self.page.add_style_tag(content=css)

    async def emulate_media(self, media: str) -> None:
        await self.page.emulate_media(media=media)

    async def to_pdf(self, path: Path, options: dict) -> None:
        # Chromium's PDF backend has no omitBackground switch; clear it in CSS
        if options.get("omit_background"):
            await self.add_style("html, body { background: transparent !important; }")

        display_header_footer = options.get("display_header_footer", False)
        await self.page.pdf(
            path=str(path),
            width=options["width"],
            height=options["height"],
            margin=options["margin"],
            print_background=options.get("print_background", True),
            prefer_css_page_size=options.get("prefer_css_page_size", False),
            display_header_footer=display_header_footer,
            header_template='<div></div>' if display_header_footer else None,
            footer_template=PAGE_NUMBER_FOOTER if display_header_footer else None,
            scale=1.0,
        )


class BrowserLauncher:
    """Starts one headless Chromium per session and always tears it down.

    The bundled Playwright Chromium is tried first; if it is missing, a
    browser installed on the system is used instead.
    """

    def __init__(self, console: Optional[Console] = None, executable_path: Optional[Path] = None,
                 headless: bool = True):
        self.console = console or Console()
        self.executable_path = executable_path
        self.headless = headless

    async def _launch(self, playwright):
        options = {"headless": self.headless, "args": LAUNCH_ARGS}
        if self.executable_path:
            try:
                return await playwright.chromium.launch(executable_path=str(self.executable_path), **options)
            except Exception as e:
                raise BrowserLaunchError(str(e)) from e
        try:
            return await playwright.chromium.launch(**options)
        except Exception as bundled_error:
            system_browser = find_available_browser()
            if system_browser is None:
                raise BrowserLaunchError(str(bundled_error)) from bundled_error
            self.console.debug(f"Bundled Chromium unavailable, using {system_browser.name}")
            try:
                return await playwright.chromium.launch(executable_path=str(system_browser), **options)
            except Exception as e:
                raise BrowserLaunchError(str(e)) from e

    @asynccontextmanager
    async def open_session(self, html: str) -> AsyncIterator[PlaywrightSession]:
        """Yield a session with ``html`` loaded and the network idle."""
        playwright = await async_playwright().start()
        browser = None
        try:
            browser = await self._launch(playwright)
            page = await browser.new_page()
            session = PlaywrightSession(page)
            await session.emulate_media("print")
            await page.set_content(html, wait_until="networkidle")
            yield session
        finally:
            await self._close(browser, playwright)

    async def _close(self, browser, playwright) -> None:
        try:
            if browser and browser.is_connected():
                await browser.close()
        except Exception as e:
            self.console.debug(f"Error while closing browser: {e}")
        try:
            await playwright.stop()
        except Exception as e:
            self.console.debug(f"Error while stopping Playwright: {e}")
        self.console.debug("Browser instance closed and cleaned up")
