"""Asyncio daemon for patchright-daemon.

Owns the browser session and serves requests from the file-backed command
channel.  A fixed-interval poll loop picks up at most one request per tick
and dispatches it to completion before polling again, so the channel never
has more than one request in flight.

The daemon runs either in the foreground (``patchright-daemon serve``) or as
a detached subprocess started by ``client.start_daemon``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys
from typing import Any

from patchright_daemon.browser import BrowserSession
from patchright_daemon.channel import CommandChannel
from patchright_daemon.config import DaemonConfig
from patchright_daemon.console import ConsoleLogBuffer
from patchright_daemon.dispatcher import CommandDispatcher
from patchright_daemon.errors import FatalStartupError, MalformedRequestError
from patchright_daemon.monitor import SessionHealthMonitor

logger = logging.getLogger("patchright_daemon.server")


class Daemon:
    """Wires the channel, session, monitor and dispatcher together."""

    def __init__(
        self,
        config: DaemonConfig,
        channel: CommandChannel | None = None,
        session: BrowserSession | None = None,
    ) -> None:
        self.config = config
        self.channel = channel or CommandChannel(config.resolve_work_dir())
        if session is None:
            console = ConsoleLogBuffer(config.console.max_entries)
            session = BrowserSession(config, console)
        self.session = session
        self.console = session.console
        self.monitor = SessionHealthMonitor(session)
        self.dispatcher = CommandDispatcher(session, self.monitor, self.console)
        self._stopping = asyncio.Event()

    # -- Poll loop -----------------------------------------------------------

    async def tick(self) -> bool:
        """Serve at most one pending request.

        Returns ``True`` if the request slot held something.
        """
        if not self.channel.has_pending_request():
            return False
        try:
            request = self.channel.try_consume_request()
        except MalformedRequestError as exc:
            logger.error(f"Command processing error: {exc}")
            self.channel.write_response({"error": str(exc)})
            return True
        if request is None:
            return False

        response = await self.dispatcher.dispatch(request)
        self.channel.write_response(response)
        return True

    async def poll(self) -> None:
        """Tick every ``poll.daemon_interval`` seconds until stopped."""
        interval = self.config.poll.daemon_interval
        while not self._stopping.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        self._stopping.set()

    # -- Lifecycle -----------------------------------------------------------

    async def run(self) -> None:
        """Start the browser, signal readiness and serve until stopped.

        Raises ``FatalStartupError`` if the browser cannot be launched, either
        initially or during a restart.  Channel files are removed on the way
        out in every case.
        """
        # Stale files from a previous run
        self.channel.cleanup()
        try:
            await self.monitor.start()
            self.channel.config_path.write_text(
                self.config.model_dump_json(indent=2), encoding="utf-8"
            )
            self.channel.mark_ready(os.getpid())
            self._install_signal_handlers()
            logger.info(f"Listening for commands in {self.channel.work_dir}")
            await self.poll()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        logger.info("Shutting down...")
        await self.session.close()
        self.channel.cleanup()
        self.channel.config_path.unlink(missing_ok=True)

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform/thread
                pass


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_daemon(config: DaemonConfig) -> int:
    """Run a daemon to completion and return the process exit status."""
    daemon = Daemon(config)
    try:
        asyncio.run(daemon.run())
    except FatalStartupError as exc:
        logger.error(f"Fatal error: {exc}")
        return 1
    except Exception:
        logger.exception("Daemon crashed")
        daemon.channel.cleanup()
        return 1
    logger.info("Daemon stopped")
    return 0


def _setup_logging(config: DaemonConfig, foreground: bool) -> None:
    """Configure logging for the daemon process.

    Records go to ``daemon.log`` in the work directory.  In the foreground
    they are echoed to *stderr*; when detached, *stdout*/*stderr* are
    redirected to the log so stray output and tracebacks land there too.
    """
    channel = CommandChannel(config.resolve_work_dir())
    channel.work_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.FileHandler(channel.log_path, mode="w", encoding="utf-8")
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.setLevel(config.log_level.upper())
    root.addHandler(handler)

    if foreground:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(formatter)
        root.addHandler(stream)
    else:
        sys.stdout = open(channel.log_path, "a", encoding="utf-8")  # noqa: SIM115
        sys.stderr = sys.stdout


def start_daemon(config_dict: dict[str, Any] | str, foreground: bool = False) -> int:
    """Entry point for the daemon process.  Returns the exit status."""
    parsed: dict[str, Any] = (
        json.loads(config_dict) if isinstance(config_dict, str) else config_dict
    )
    config = DaemonConfig(**parsed)
    _setup_logging(config, foreground)
    logger.info(f"Daemon starting (pid={os.getpid()})")
    return run_daemon(config)
