"""Lazy health checking and restart of the browser session."""

from __future__ import annotations

import asyncio
import logging

from patchright_daemon.browser import BLANK_URL, BrowserSession
from patchright_daemon.errors import DaemonError

logger = logging.getLogger(__name__)


class SessionHealthMonitor:
    """Answers "is the session usable?" and replaces it when it is not.

    Restarts are serialized by a lock: a caller arriving while a restart is
    in flight waits for it, then finds a usable session and returns without
    restarting again.
    """

    def __init__(self, session: BrowserSession) -> None:
        self.session = session
        self.restarting: bool = False
        self.restart_count: int = 0
        self._restart_lock = asyncio.Lock()

    async def start(self) -> None:
        """Initial session startup.  Raises ``FatalStartupError`` on failure."""
        logger.info("Starting browser...")
        await self.session.start()

    async def ensure_ready(self) -> bool:
        """Restart the session if it is not usable.

        Returns ``True`` when a restart was performed.
        """
        if self.restarting:
            logger.info("Waiting for in-flight browser restart...")
        async with self._restart_lock:
            if await self.session.is_usable():
                return False
            await self._restart()
            return True

    async def _restart(self) -> None:
        logger.info("Browser/page closed, restarting...")
        self.restarting = True
        try:
            await self.session.close()
            await self.session.start()
            self.restart_count += 1
            await self._restore_last_url()
        finally:
            self.restarting = False

    async def _restore_last_url(self) -> None:
        last_url = self.session.last_url
        if not last_url or last_url == BLANK_URL:
            return
        logger.info(f"Restoring last URL: {last_url}")
        try:
            await self.session.navigate(
                last_url, timeout=self.session.config.timeouts.restore
            )
        except DaemonError as exc:
            # The fresh session is usable even if the old page can't be reloaded
            logger.warning(f"Failed to restore URL: {exc}")
