"""Exception hierarchy for patchright-daemon.

Dispatch-time errors are split into two families: ``SessionLostError`` (the
browser transport or page went away; recoverable by restarting the session)
and ``ApplicationError`` (everything else; surfaced to the client verbatim).
"""

from __future__ import annotations

from patchright._impl._errors import TargetClosedError

_SESSION_LOST_PATTERNS = (
    "target closed",
    "has been closed",
    "browser closed",
    "page closed",
    "connection closed",
    "disconnected",
)


class DaemonError(Exception):
    """Base exception for all patchright-daemon errors."""


class SessionLostError(DaemonError):
    """The browser transport or the controlled page is gone."""


class ApplicationError(DaemonError):
    """A command failed for reasons unrelated to session health."""


class MalformedRequestError(DaemonError):
    """The request slot held something that is not a valid request."""


class FatalStartupError(DaemonError):
    """The browser engine could not be launched at all."""


class ChannelTimeoutError(DaemonError):
    """No response arrived within the client's wait bound."""

    def __init__(self, message: str, *, timeout: float = 0.0) -> None:
        super().__init__(message)
        self.timeout = timeout


class ChannelBusyError(DaemonError):
    """A request is already pending in the channel."""


class DaemonNotRunningError(DaemonError):
    """The ready marker is absent or points at a dead process."""


def classify_engine_error(exc: BaseException) -> DaemonError:
    """Map an exception raised by the browser engine to a typed daemon error.

    Already-classified errors are returned unchanged.  patchright's
    ``TargetClosedError`` always means the session is lost; for other
    exception types the message is inspected, since driver disconnects
    surface as plain ``Error`` instances.
    """
    if isinstance(exc, DaemonError):
        return exc

    message = str(exc) or type(exc).__name__
    if isinstance(exc, TargetClosedError):
        return SessionLostError(message)
    lowered = message.lower()
    # Network failures such as net::ERR_CONNECTION_CLOSED belong to the page load
    if "net::err_" not in lowered and any(
        pattern in lowered for pattern in _SESSION_LOST_PATTERNS
    ):
        return SessionLostError(message)
    return ApplicationError(message)
