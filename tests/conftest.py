"""Shared fixtures for patchright-daemon tests."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from patchright_daemon.browser import BrowserSession
from patchright_daemon.channel import CommandChannel
from patchright_daemon.config import DaemonConfig
from patchright_daemon.console import ConsoleLogBuffer

SCREEN = {"width": 1920, "height": 1055, "innerWidth": 1920, "innerHeight": 960}


def make_page(url: str = "about:blank", title: str = "Example") -> MagicMock:
    """A MagicMock standing in for a patchright Page.

    ``goto`` updates ``url`` the way a real navigation does.
    """
    page = MagicMock()
    page.url = url

    async def _goto(target, **kwargs):
        page.url = target

    page.goto = AsyncMock(side_effect=_goto)
    page.title = AsyncMock(return_value=title)
    page.evaluate = AsyncMock(return_value=SCREEN)
    page.set_viewport_size = AsyncMock()
    page.close = AsyncMock()
    page.on = MagicMock()
    return page


@pytest.fixture
def channel(tmp_path):
    """A CommandChannel rooted in tmp_path."""
    return CommandChannel(tmp_path)


@pytest.fixture
def default_config(tmp_path):
    """Return a default DaemonConfig using tmp_path as work dir."""
    return DaemonConfig(work_dir=str(tmp_path))


@pytest.fixture
def config_file(tmp_path):
    """Write a config JSON file and return its path."""
    config = {
        "browser": {
            "launch_options": {"headless": True},
            "viewport": {"width": 1280, "height": 720},
        },
        "timeouts": {"navigation": 5000},
        "log_level": "WARNING",
    }
    path = tmp_path / "test-config.json"
    path.write_text(json.dumps(config), encoding="utf-8")
    return path


@pytest.fixture
def page_factory():
    """Build additional mock pages, e.g. the page opened by a restart."""
    return make_page


@pytest.fixture
def mock_page():
    return make_page()


@pytest.fixture
def mock_context(mock_page):
    """A MagicMock standing in for a patchright BrowserContext."""
    ctx = MagicMock()
    ctx.new_page = AsyncMock(return_value=mock_page)
    ctx.close = AsyncMock()
    return ctx


@pytest.fixture
def mock_browser(mock_context):
    """A MagicMock standing in for a patchright Browser."""
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=mock_context)
    browser.close = AsyncMock()
    browser.is_connected = MagicMock(return_value=True)
    return browser


@pytest.fixture
def mock_playwright(mock_browser):
    """A MagicMock standing in for the started patchright driver."""
    pw = MagicMock()
    pw.chromium.launch = AsyncMock(return_value=mock_browser)
    pw.stop = AsyncMock()
    return pw


@pytest.fixture
def patched_playwright(monkeypatch, mock_playwright):
    """Make ``async_playwright().start()`` return ``mock_playwright``."""
    factory = MagicMock()
    factory.return_value.start = AsyncMock(return_value=mock_playwright)
    monkeypatch.setattr("patchright_daemon.browser.async_playwright", factory)
    return factory


@pytest.fixture
def console_buffer():
    return ConsoleLogBuffer()


@pytest.fixture
def browser_session(
    default_config,
    console_buffer,
    mock_playwright,
    mock_browser,
    mock_context,
    mock_page,
):
    """A BrowserSession with mocked patchright objects pre-wired."""
    session = BrowserSession(default_config, console_buffer)
    session.playwright = mock_playwright
    session.browser = mock_browser
    session.context = mock_context
    session.page = mock_page
    return session

