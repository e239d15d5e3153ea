"""The daemon's single browser session.

``BrowserSession`` owns the patchright driver, browser, context and page.  All
calls into the engine go through ``_engine_call`` so that failures come out as
either ``SessionLostError`` or ``ApplicationError``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from patchright.async_api import async_playwright

from patchright_daemon.config import DaemonConfig
from patchright_daemon.console import ConsoleLogBuffer, format_entry
from patchright_daemon.errors import (
    ApplicationError,
    FatalStartupError,
    SessionLostError,
    classify_engine_error,
)
from patchright_daemon.models import ConsoleLocation, ConsoleLogEntry

logger = logging.getLogger(__name__)

BLANK_URL = "about:blank"

_PROBE_TIMEOUT = 5.0

_CONSOLE_TYPES = frozenset({"log", "info", "warn", "error", "debug"})
# Everything else (table, dir, group, ...) is recorded as "log"
_CONSOLE_TYPE_ALIASES = {"warning": "warn", "assert": "error", "trace": "debug"}

_SCREEN_SIZE_JS = """() => ({
    width: window.screen.availWidth,
    height: window.screen.availHeight,
    innerWidth: window.innerWidth,
    innerHeight: window.innerHeight
})"""


class BrowserSession:
    """Holds the patchright objects for one browser session."""

    def __init__(self, config: DaemonConfig, console: ConsoleLogBuffer) -> None:
        self.config: DaemonConfig = config
        self.console: ConsoleLogBuffer = console

        # Patchright objects
        self.playwright: Any = None
        self.browser: Any = None
        self.context: Any = None
        self.page: Any = None

        # Most recent successful navigation
        self.last_url: str = BLANK_URL
        self.viewport: dict[str, int] | None = None

    # -- Lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Launch the browser, open a page and bind the console listeners.

        Raises ``FatalStartupError`` if any step fails; partially created
        objects are torn down first.
        """
        bcfg = self.config.browser
        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                **bcfg.launch_options
            )
            if bcfg.viewport is not None:
                self.viewport = bcfg.viewport.model_dump()
                self.context = await self.browser.new_context(viewport=self.viewport)
            else:
                self.context = await self.browser.new_context(no_viewport=True)
            self.page = await self.context.new_page()
            self._bind_listeners(self.page)
            if bcfg.viewport is None:
                await self._match_screen_size()
        except Exception as exc:
            logger.exception("Browser startup failed")
            await self.close()
            raise FatalStartupError(f"Failed to start browser: {exc}") from exc

    async def _match_screen_size(self) -> None:
        """Size the viewport to the available screen area."""
        screen = await self.page.evaluate(_SCREEN_SIZE_JS)
        logger.info(f"Screen available: {screen['width']} x {screen['height']}")
        logger.info(
            f"Window inner: {screen['innerWidth']} x {screen['innerHeight']}"
        )
        self.viewport = {"width": screen["width"], "height": screen["height"]}
        await self.page.set_viewport_size(self.viewport)
        logger.info("Viewport set to screen size")

    async def close(self) -> None:
        """Tear down browser and driver.  Errors are logged and ignored."""
        if self.browser is not None:
            try:
                await self.browser.close()
            except Exception as exc:
                logger.debug(f"Ignoring error while closing browser: {exc}")
        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except Exception as exc:
                logger.debug(f"Ignoring error while stopping driver: {exc}")
        self.playwright = None
        self.browser = None
        self.context = None
        self.page = None

    # -- Health --------------------------------------------------------------

    def is_connected(self) -> bool:
        """Transport-level check: does the browser report itself connected?"""
        if self.browser is None:
            return False
        try:
            return bool(self.browser.is_connected())
        except Exception:
            return False

    async def is_usable(self) -> bool:
        """Two-stage check: transport connected, then a title round-trip.

        The browser can stay connected after the user closed the tab, so the
        page itself is probed.  Any probe failure counts as unusable.
        """
        if not self.is_connected() or self.page is None:
            return False
        try:
            await asyncio.wait_for(self.page.title(), timeout=_PROBE_TIMEOUT)
        except Exception as exc:
            logger.debug(f"Page probe failed: {exc}")
            return False
        return True

    # -- Page event handlers -------------------------------------------------

    def _bind_listeners(self, page: Any) -> None:
        page.on("console", self._on_console)
        page.on("pageerror", self._on_page_error)

    def _on_console(self, msg: Any) -> None:
        entry_type = _CONSOLE_TYPE_ALIASES.get(msg.type, msg.type)
        if entry_type not in _CONSOLE_TYPES:
            entry_type = "log"
        location = msg.location
        entry = ConsoleLogEntry(
            type=entry_type,
            text=msg.text,
            location=(
                ConsoleLocation.model_validate(location)
                if isinstance(location, dict) and location.get("url")
                else None
            ),
        )
        self.console.append(entry)
        logger.info(format_entry(entry))

    def _on_page_error(self, error: Any) -> None:
        message = getattr(error, "message", None) or str(error)
        entry = ConsoleLogEntry(
            type="pageerror",
            text=message,
            stack=getattr(error, "stack", None) or None,
        )
        self.console.append(entry)
        logger.info(f"[PAGE ERROR] {message}")

    # -- Engine operations ---------------------------------------------------

    @asynccontextmanager
    async def _engine_call(self) -> AsyncIterator[Any]:
        """Yield the live page and translate engine failures to typed errors."""
        if self.page is None:
            raise SessionLostError("Browser page has been closed")
        try:
            yield self.page
        except (SessionLostError, ApplicationError):
            raise
        except Exception as exc:
            raise classify_engine_error(exc) from exc

    async def navigate(self, url: str, timeout: int | None = None) -> dict[str, Any]:
        """Navigate and wait for network quiescence.

        ``last_url`` only changes once ``goto`` has succeeded.
        """
        if timeout is None:
            timeout = self.config.timeouts.navigation
        async with self._engine_call() as page:
            await page.goto(url, wait_until="networkidle", timeout=timeout)
            self.last_url = page.url
            title = await page.title()
        return {"url": page.url, "title": title}

    async def evaluate(self, code: str) -> Any:
        async with self._engine_call() as page:
            return await page.evaluate(code)

    async def resize(self, width: int, height: int) -> dict[str, int]:
        size = {"width": width, "height": height}
        async with self._engine_call() as page:
            await page.set_viewport_size(size)
        self.viewport = size
        return size

    async def describe(self) -> dict[str, Any]:
        """Return the current page URL and title."""
        async with self._engine_call() as page:
            title = await page.title()
        return {"url": page.url, "title": title}
