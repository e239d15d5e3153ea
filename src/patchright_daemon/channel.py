"""File-backed command channel for patchright-daemon.

The daemon and its clients share a work directory and exchange one JSON
object per file.  Each slot holds at most one message; arbitration is by file
existence alone.

Directory layout (in the work directory):

    .browser-command   # request slot, written by a client, consumed by the daemon
    .browser-result    # response slot, written by the daemon, consumed by a client
    .browser-ready     # ready marker, holds the daemon PID
    daemon.log         # daemon log output

Every write goes to a temporary file first and is then moved into place, so a
reader never observes a half-written slot.  Every read first renames the slot
to a private name, so exactly one reader wins it.
"""

from __future__ import annotations

import json
import os
import uuid
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from patchright_daemon.errors import MalformedRequestError
from patchright_daemon.models import Request, describe_validation_error

# ---------------------------------------------------------------------------
# File names
# ---------------------------------------------------------------------------

REQUEST_FILENAME = ".browser-command"
RESPONSE_FILENAME = ".browser-result"
READY_FILENAME = ".browser-ready"
LOG_FILENAME = "daemon.log"
CONFIG_FILENAME = ".browser-config.json"


# ---------------------------------------------------------------------------
# Low-level slot helpers
# ---------------------------------------------------------------------------


def _temp_path(path: Path) -> Path:
    return path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")


def _atomic_write(path: Path, text: str) -> None:
    """Write *text* to *path* via a temp file and ``os.replace``."""
    tmp = _temp_path(path)
    tmp.write_text(text, encoding="utf-8")
    try:
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def _exclusive_write(path: Path, text: str) -> bool:
    """Publish *text* at *path* only if nothing is there yet.

    The content is staged in a temp file and hard-linked into place;
    ``os.link`` fails when the target exists, which makes the check and the
    publish a single step.
    """
    tmp = _temp_path(path)
    tmp.write_text(text, encoding="utf-8")
    try:
        os.link(tmp, path)
    except FileExistsError:
        return False
    finally:
        tmp.unlink(missing_ok=True)
    return True


def _take(path: Path) -> bytes | None:
    """Claim and remove the slot at *path*, returning its raw content.

    Returns ``None`` when the slot is empty or another reader claimed it
    first.
    """
    claimed = path.with_name(f"{path.name}.{uuid.uuid4().hex}.claimed")
    try:
        os.rename(path, claimed)
    except FileNotFoundError:
        return None
    try:
        return claimed.read_bytes()
    finally:
        claimed.unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------


class CommandChannel:
    """Single-slot request/response mailbox pair plus a ready marker."""

    def __init__(self, work_dir: Path | str) -> None:
        self.work_dir = Path(work_dir)

    # -- Paths ---------------------------------------------------------------

    @property
    def request_path(self) -> Path:
        return self.work_dir / REQUEST_FILENAME

    @property
    def response_path(self) -> Path:
        return self.work_dir / RESPONSE_FILENAME

    @property
    def ready_path(self) -> Path:
        return self.work_dir / READY_FILENAME

    @property
    def log_path(self) -> Path:
        return self.work_dir / LOG_FILENAME

    @property
    def config_path(self) -> Path:
        return self.work_dir / CONFIG_FILENAME

    # -- Requests ------------------------------------------------------------

    def has_pending_request(self) -> bool:
        return self.request_path.exists()

    def try_send_request(self, request: Request) -> bool:
        """Place *request* in the request slot.

        Returns ``False`` without writing when a previous request is still
        pending; only one request may be outstanding at a time.
        """
        self.work_dir.mkdir(parents=True, exist_ok=True)
        payload = request.model_dump_json(exclude_none=True)
        return _exclusive_write(self.request_path, payload)

    def try_consume_request(self) -> Request | None:
        """Take the pending request, if any.

        The slot is removed before the content is decoded, so a request is
        never seen twice.  Undecodable content raises
        ``MalformedRequestError`` with the slot already freed.
        """
        raw = _take(self.request_path)
        if raw is None:
            return None
        try:
            return Request.model_validate_json(raw.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise MalformedRequestError(
                f"Malformed request: not valid UTF-8 ({exc.reason} at byte {exc.start})"
            ) from exc
        except ValidationError as exc:
            raise MalformedRequestError(
                f"Malformed request: {describe_validation_error(exc)}"
            ) from exc

    # -- Responses -----------------------------------------------------------

    def write_response(self, response: dict[str, Any]) -> None:
        """Write *response*, replacing any uncollected previous response."""
        self.work_dir.mkdir(parents=True, exist_ok=True)
        _atomic_write(
            self.response_path, json.dumps(response, indent=2, default=str)
        )

    def try_read_response(self) -> dict[str, Any] | None:
        """Take the response, if any.  The first reader to see it owns it."""
        raw = _take(self.response_path)
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            return {"error": f"Malformed response from daemon: {exc}"}

    def discard_response(self) -> bool:
        """Drop an uncollected response.  Returns ``True`` if one existed."""
        return _take(self.response_path) is not None

    # -- Ready marker --------------------------------------------------------

    def mark_ready(self, pid: int | None = None) -> None:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        _atomic_write(self.ready_path, str(pid if pid is not None else os.getpid()))

    def is_ready(self) -> bool:
        return self.ready_path.exists()

    def read_ready_pid(self) -> int | None:
        """Read the daemon PID from the ready marker.

        Returns ``None`` if the marker is missing, empty, or does not hold an
        integer.
        """
        try:
            text = self.ready_path.read_text(encoding="utf-8").strip()
            if not text:
                return None
            return int(text)
        except (FileNotFoundError, ValueError):
            return None

    def is_daemon_alive(self) -> bool:
        """Return ``True`` if the ready marker names a running process.

        Uses ``os.kill(pid, 0)`` which checks for process existence without
        sending a signal.
        """
        pid = self.read_ready_pid()
        if pid is None:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Process exists but we lack permission to signal it
            return True
        return True

    # -- Cleanup -------------------------------------------------------------

    def cleanup(self) -> None:
        """Remove the request, response and ready files plus stray temp files."""
        for path in (self.request_path, self.response_path, self.ready_path):
            path.unlink(missing_ok=True)
        if not self.work_dir.is_dir():
            return
        for name in (REQUEST_FILENAME, RESPONSE_FILENAME, READY_FILENAME):
            for suffix in ("tmp", "claimed"):
                for stray in self.work_dir.glob(f"{name}.*.{suffix}"):
                    stray.unlink(missing_ok=True)

