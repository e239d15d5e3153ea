"""Routes decoded requests to command handlers.

Each request ends in exactly one response dict.  A handler failing with
``SessionLostError`` triggers one restart through the health monitor and one
retry, unless the monitor finds the session still usable, in which case the
error is reported as-is.  Any other failure is returned to the client as ``{"error": ...}``
without a retry.  Only ``FatalStartupError`` escapes ``dispatch``.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from patchright_daemon.browser import BrowserSession
from patchright_daemon.console import ConsoleLogBuffer
from patchright_daemon.errors import (
    ApplicationError,
    DaemonError,
    FatalStartupError,
    SessionLostError,
)
from patchright_daemon.models import (
    Action,
    ExecPayload,
    NavigatePayload,
    Request,
    ResizePayload,
    describe_validation_error,
)
from patchright_daemon.monitor import SessionHealthMonitor

logger = logging.getLogger(__name__)

_ACTIONS = {action.value for action in Action}

P = TypeVar("P", bound=BaseModel)


def _parse(action: str, model: type[P], data: dict[str, Any]) -> P:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ApplicationError(
            f"Invalid data for '{action}': {describe_validation_error(exc)}"
        ) from exc


class CommandDispatcher:
    def __init__(
        self,
        session: BrowserSession,
        monitor: SessionHealthMonitor,
        console: ConsoleLogBuffer,
    ) -> None:
        self.session = session
        self.monitor = monitor
        self.console = console

    async def dispatch(self, request: Request) -> dict[str, Any]:
        """Execute *request* and return its response."""
        action = request.action
        logger.debug(f"Received command: {action} data={request.data}")

        try:
            if action not in _ACTIONS:
                raise ApplicationError(f"Unknown command: {action}")
            handler = getattr(self, f"cmd_{action.replace('-', '_')}")
            try:
                response = await handler(request.data)
            except SessionLostError as exc:
                logger.info(f"Command {action!r} failed ({exc}), checking browser...")
                if not await self.monitor.ensure_ready():
                    # Session is still usable, so the command itself failed
                    raise ApplicationError(str(exc)) from exc
                response = await handler(request.data)
        except FatalStartupError:
            raise
        except DaemonError as exc:
            logger.warning(f"Command {action!r} failed: {exc}")
            response = {"error": str(exc)}
        except Exception as exc:
            logger.exception(f"Command {action!r} raised an exception")
            response = {"error": str(exc) or type(exc).__name__}
        else:
            logger.debug(f"Command {action!r} succeeded")

        if request.id is not None:
            response["id"] = request.id
        return response

    # -----------------------------------------------------------------------
    # Command handlers
    # -----------------------------------------------------------------------

    async def cmd_navigate(self, data: dict[str, Any]) -> dict[str, Any]:
        """Navigate to ``data.url`` and wait for network quiescence."""
        payload = _parse("navigate", NavigatePayload, data)
        result = await self.session.navigate(payload.url)
        return {"success": True, **result}

    async def cmd_exec(self, data: dict[str, Any]) -> dict[str, Any]:
        """Evaluate ``data.code`` in the page."""
        payload = _parse("exec", ExecPayload, data)
        result = await self.session.evaluate(payload.code)
        return {"success": True, "result": result}

    async def cmd_console(self, data: dict[str, Any]) -> dict[str, Any]:
        response: dict[str, Any] = {
            "success": True,
            "logs": [entry.to_wire() for entry in self.console.snapshot()],
        }
        if self.console.dropped:
            response["dropped"] = self.console.dropped
        return response

    async def cmd_console_clear(self, data: dict[str, Any]) -> dict[str, Any]:
        self.console.clear()
        return {"success": True}

    async def cmd_status(self, data: dict[str, Any]) -> dict[str, Any]:
        page = await self.session.describe()
        return {
            "success": True,
            "url": page["url"],
            "title": page["title"],
            "consoleLogsCount": len(self.console),
        }

    async def cmd_resize(self, data: dict[str, Any]) -> dict[str, Any]:
        """Set the viewport to ``data.width`` x ``data.height``."""
        payload = _parse("resize", ResizePayload, data)
        size = await self.session.resize(payload.width, payload.height)
        return {"success": True, **size}
