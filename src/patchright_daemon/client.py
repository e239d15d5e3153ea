"""Synchronous client for patchright-daemon.

Talks to a running daemon through the file-backed command channel: writes a
request, then polls for the matching response.  Also provides helpers for
starting and stopping the daemon process.
"""

from __future__ import annotations

import json
import os
import signal
import subprocess
import sys
import time
import uuid
from typing import Any

from patchright_daemon.channel import CommandChannel
from patchright_daemon.config import DaemonConfig
from patchright_daemon.errors import (
    ChannelBusyError,
    ChannelTimeoutError,
    DaemonNotRunningError,
)
from patchright_daemon.models import Request


def ensure_daemon_running(channel: CommandChannel) -> None:
    """Raise ``DaemonNotRunningError`` unless a live daemon owns *channel*.

    A ready marker left behind by a crashed daemon is removed.
    """
    if not channel.is_ready():
        raise DaemonNotRunningError(
            "Browser daemon not running! Start it with: patchright-daemon start"
        )
    if not channel.is_daemon_alive():
        channel.cleanup()
        raise DaemonNotRunningError(
            "Browser daemon not running (stale ready marker cleaned up). "
            "Start it with: patchright-daemon start"
        )


def send_command(
    channel: CommandChannel,
    action: str,
    data: dict[str, Any] | None = None,
    timeout: float = 30.0,
    interval: float = 0.05,
) -> dict[str, Any]:
    """Send *action* to the daemon and wait for its response.

    Any uncollected response from an earlier, abandoned call is discarded
    before sending, and responses carrying a different request id are
    ignored.

    Raises ``DaemonNotRunningError`` if no daemon is serving the channel,
    ``ChannelBusyError`` if another request is still pending, and
    ``ChannelTimeoutError`` if no response arrives within *timeout* seconds.
    A timeout does not mean the daemon skipped the request.
    """
    ensure_daemon_running(channel)

    request = Request(action=action, data=data or {}, id=uuid.uuid4().hex)
    channel.discard_response()
    if not channel.try_send_request(request):
        raise ChannelBusyError(
            "Another command is still pending. Wait for it to finish and retry."
        )

    deadline = time.monotonic() + timeout
    while True:
        response = channel.try_read_response()
        if response is not None:
            if response.get("id") in (None, request.id):
                return response
        elif not channel.is_daemon_alive():
            raise DaemonNotRunningError("Browser daemon exited before responding")
        if time.monotonic() >= deadline:
            raise ChannelTimeoutError(
                f"Command timed out after {timeout}s (no response received)",
                timeout=timeout,
            )
        time.sleep(interval)


def start_daemon(config: DaemonConfig, timeout: float | None = None) -> bool:
    """Start the daemon as a detached subprocess.

    The daemon is launched by running::

        python -c "from patchright_daemon.server import start_daemon; ..."

    and this function waits up to *timeout* seconds for the ready marker.

    Returns ``True`` if the daemon started (or was already running),
    ``False`` otherwise.
    """
    channel = CommandChannel(config.resolve_work_dir())
    if channel.is_ready() and channel.is_daemon_alive():
        return True
    if timeout is None:
        timeout = config.timeouts.startup

    config_dict = config.model_dump()
    config_dict["work_dir"] = str(channel.work_dir.resolve())
    config_json = json.dumps(config_dict)

    # The daemon logs to daemon.log in the work directory itself
    proc = subprocess.Popen(
        [
            sys.executable,
            "-c",
            (
                "import sys; "
                "from patchright_daemon.server import start_daemon; "
                f"sys.exit(start_daemon({config_json!r}))"
            ),
        ],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )

    start_time = time.monotonic()
    while time.monotonic() - start_time < timeout:
        if channel.read_ready_pid() == proc.pid:
            return True
        if proc.poll() is not None:
            return False
        time.sleep(0.1)

    return False


def stop_daemon(channel: CommandChannel, timeout: float = 10.0) -> dict[str, Any]:
    """Ask the daemon to shut down via ``SIGTERM`` and wait for it to exit."""
    pid = channel.read_ready_pid()
    if pid is None or not channel.is_daemon_alive():
        channel.cleanup()
        return {"ok": True, "output": "Browser daemon is not running"}
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        channel.cleanup()
        return {"ok": True, "output": "Already dead"}
    except PermissionError:
        return {"ok": False, "error": f"Permission denied killing PID {pid}"}

    start_time = time.monotonic()
    while time.monotonic() - start_time < timeout:
        if not channel.is_ready():
            return {"ok": True, "output": f"Stopped browser daemon (PID {pid})"}
        time.sleep(0.1)
    return {
        "ok": False,
        "error": f"Browser daemon (PID {pid}) did not exit within {timeout}s",
    }
