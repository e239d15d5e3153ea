"""Argparse-based CLI for patchright-daemon.

Browser commands are sent to the running daemon through the command channel;
daemon management commands (``serve``, ``start``, ``stop``, ``logs``,
``config-print``) are handled here directly.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Callable

from patchright_daemon.channel import CommandChannel
from patchright_daemon.client import send_command, start_daemon, stop_daemon
from patchright_daemon.config import DaemonConfig, load_config
from patchright_daemon.console import format_entry
from patchright_daemon.errors import (
    ChannelBusyError,
    ChannelTimeoutError,
    DaemonNotRunningError,
)
from patchright_daemon.models import Action, ConsoleLogEntry

# ---------------------------------------------------------------------------
# Subparser registration
# ---------------------------------------------------------------------------


def _register_subcommands(subparsers: argparse._SubParsersAction) -> None:
    """Register every subcommand on *subparsers*."""

    # ── Browser commands ───────────────────────────────────────────────

    p = subparsers.add_parser("navigate", help="Navigate to a URL")
    p.add_argument("url", help="URL to navigate to")

    p = subparsers.add_parser("exec", help="Evaluate JavaScript in the page")
    p.add_argument("code", help="JavaScript code to evaluate")

    subparsers.add_parser("console", help="Show buffered console messages")
    subparsers.add_parser("console-clear", help="Clear buffered console messages")
    subparsers.add_parser("status", help="Show the current page and log count")

    p = subparsers.add_parser("resize", help="Resize the browser viewport")
    p.add_argument("width", type=int, help="Viewport width")
    p.add_argument("height", type=int, help="Viewport height")

    # ── Daemon management (client-side) ────────────────────────────────

    subparsers.add_parser("serve", help="Run the browser daemon in the foreground")
    subparsers.add_parser("start", help="Start the browser daemon in the background")
    subparsers.add_parser("stop", help="Stop the browser daemon")
    subparsers.add_parser("config-print")  # Hidden command (no help text)

    p = subparsers.add_parser("logs", help="Show the daemon log")
    p.add_argument(
        "-n",
        "--lines",
        type=int,
        default=50,
        help="Number of lines to show (default: 50, 0 for all)",
    )
    p.add_argument(
        "-f", "--follow", action="store_true", help="Follow log output (like tail -f)"
    )


def _request_data(args: argparse.Namespace) -> dict[str, Any]:
    """Build the request payload for a browser command."""
    if args.command == Action.NAVIGATE.value:
        return {"url": args.url}
    if args.command == Action.EXEC.value:
        return {"code": args.code}
    if args.command == Action.RESIZE.value:
        return {"width": args.width, "height": args.height}
    return {}


# ---------------------------------------------------------------------------
# Result printers
# ---------------------------------------------------------------------------


def _print_navigate(result: dict[str, Any]) -> None:
    print("Navigated successfully!")
    print(f"URL: {result.get('url')}")
    print(f"Title: {result.get('title')}")


def _print_exec(result: dict[str, Any]) -> None:
    value = result.get("result")
    print("Result:")
    if isinstance(value, str):
        print(value)
    else:
        print(json.dumps(value, indent=2))


def _print_console(result: dict[str, Any]) -> None:
    logs = result.get("logs", [])
    print(f"Console logs ({len(logs)} entries):")
    print()
    for raw in logs:
        entry = ConsoleLogEntry.model_validate(raw)
        print(format_entry(entry))
        if entry.location is not None and entry.location.url:
            print(f"   └─ {entry.location.url}:{entry.location.lineNumber}")
    dropped = result.get("dropped")
    if dropped:
        print(f"({dropped} older entries were dropped)")


def _print_console_clear(result: dict[str, Any]) -> None:
    print("Console logs cleared")


def _print_status(result: dict[str, Any]) -> None:
    print("Browser daemon is running")
    print(f"Current URL: {result.get('url')}")
    print(f"Current title: {result.get('title')}")
    print(f"Console logs: {result.get('consoleLogsCount')}")


def _print_resize(result: dict[str, Any]) -> None:
    print("Viewport resized!")
    print(f"New size: {result.get('width')} x {result.get('height')}")


_PRINTERS: dict[str, Callable[[dict[str, Any]], None]] = {
    Action.NAVIGATE.value: _print_navigate,
    Action.EXEC.value: _print_exec,
    Action.CONSOLE.value: _print_console,
    Action.CONSOLE_CLEAR.value: _print_console_clear,
    Action.STATUS.value: _print_status,
    Action.RESIZE.value: _print_resize,
}


# ---------------------------------------------------------------------------
# Daemon management
# ---------------------------------------------------------------------------


def _handle_management(
    args: argparse.Namespace, config: DaemonConfig, channel: CommandChannel
) -> None:
    if args.command == "serve":
        from patchright_daemon import server

        sys.exit(server.start_daemon(config.model_dump(), foreground=True))

    if args.command == "start":
        if start_daemon(config):
            print(f"Browser daemon running (PID {channel.read_ready_pid()})")
            return
        print(
            f"Failed to start browser daemon. Check logs: {channel.log_path}",
            file=sys.stderr,
        )
        sys.exit(1)

    if args.command == "stop":
        result = stop_daemon(channel)
        if result["ok"]:
            print(result.get("output", "Browser daemon stopped"))
            return
        print(result.get("error", "Failed to stop browser daemon"), file=sys.stderr)
        sys.exit(1)

    if args.command == "config-print":
        if channel.config_path.is_file():
            print(channel.config_path.read_text(encoding="utf-8"))
        else:
            print(config.model_dump_json(indent=2))
        return

    if args.command == "logs":
        import subprocess

        log_path = channel.log_path
        if not log_path.exists():
            print("No daemon log file found.", file=sys.stderr)
            print(f"Expected: {log_path}", file=sys.stderr)
            sys.exit(1)
        if args.follow:
            try:
                subprocess.run(["tail", "-f", str(log_path)], check=False)
            except KeyboardInterrupt:
                pass
        elif args.lines == 0:
            print(log_path.read_text(encoding="utf-8"), end="")
        else:
            subprocess.run(["tail", "-n", str(args.lines), str(log_path)], check=False)
        return


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate handler."""

    parser = argparse.ArgumentParser(
        prog="patchright-daemon",
        description="Persistent browser daemon driven by short-lived commands",
    )

    # Global options
    parser.add_argument(
        "-d", "--dir", default=None, help="Work directory shared with the daemon"
    )
    parser.add_argument("--config", default=None, help="Path to config file")
    parser.add_argument(
        "--json", action="store_true", default=False, help="Print raw JSON responses"
    )
    parser.add_argument("-v", "--version", action="store_true", help="Print version")

    subparsers = parser.add_subparsers(dest="command")
    _register_subcommands(subparsers)

    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if args.version:
        from patchright_daemon.config import get_version

        print(get_version())
        return

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    # 1. Load config
    config = load_config(args.config)
    if args.dir is not None:
        config.work_dir = args.dir
    channel = CommandChannel(config.resolve_work_dir())

    # 2. Handle client-side commands directly
    if args.command not in _PRINTERS:
        _handle_management(args, config, channel)
        return

    # 3. Browser commands go to the daemon
    try:
        result = send_command(
            channel,
            args.command,
            _request_data(args),
            timeout=config.timeouts.response,
            interval=config.poll.client_interval,
        )
    except DaemonNotRunningError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)
    except ChannelTimeoutError as exc:
        print(f"No response received: {exc}", file=sys.stderr)
        sys.exit(1)
    except ChannelBusyError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    # 4. Print result
    if args.json:
        print(json.dumps(result, indent=2))
        if "error" in result:
            sys.exit(1)
        return

    if "error" in result:
        print(f"Command failed: {result['error']}", file=sys.stderr)
        sys.exit(1)
    _PRINTERS[args.command](result)
