"""Shared fixtures for patchright-daemon integration tests.

These fixtures launch a real headless Chromium browser via Patchright.
Every test gets a fresh browser instance (function-scoped) for isolation.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from patchright_daemon.browser import BrowserSession
from patchright_daemon.config import BrowserConfig, DaemonConfig, ViewportSize
from patchright_daemon.console import ConsoleLogBuffer
from patchright_daemon.dispatcher import CommandDispatcher
from patchright_daemon.monitor import SessionHealthMonitor

# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def integration_config(tmp_path: Path) -> DaemonConfig:
    """DaemonConfig for headless bundled Chromium (no sandbox)."""
    return DaemonConfig(
        work_dir=str(tmp_path),
        browser=BrowserConfig(
            launch_options={"headless": True, "chromium_sandbox": False},
            viewport=ViewportSize(width=1280, height=720),
        ),
        log_level="INFO",
    )


# ---------------------------------------------------------------------------
# Browser session fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def session_real(integration_config: DaemonConfig) -> BrowserSession:
    """Launch a real headless browser, yield BrowserSession, cleanup."""
    session = BrowserSession(integration_config, ConsoleLogBuffer())
    await session.start()
    try:
        yield session  # type: ignore[misc]
    finally:
        await session.close()


@pytest.fixture
def dispatcher_real(session_real: BrowserSession) -> CommandDispatcher:
    monitor = SessionHealthMonitor(session_real)
    return CommandDispatcher(session_real, monitor, session_real.console)
