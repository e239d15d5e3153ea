"""In-memory buffer of browser console output.

Entries are appended by page event callbacks, independently of command
execution, and survive session restarts.  The buffer is unbounded unless a
cap is configured; with a cap, the oldest entries are evicted and counted in
``dropped`` so that loss is visible to clients.
"""

from __future__ import annotations

import logging
from collections import deque

from patchright_daemon.models import ConsoleLogEntry

logger = logging.getLogger(__name__)

_PREFIXES = {
    "log": "LOG",
    "info": "INFO",
    "warn": "WARN",
    "error": "ERROR",
    "debug": "DEBUG",
    "pageerror": "PAGEERROR",
}


def format_entry(entry: ConsoleLogEntry) -> str:
    """Render *entry* as ``PREFIX [TYPE] text``."""
    prefix = _PREFIXES.get(entry.type, "MSG")
    return f"{prefix} [{entry.type.upper()}] {entry.text}"


class ConsoleLogBuffer:
    def __init__(self, max_entries: int | None = None) -> None:
        self.max_entries = max_entries
        self._entries: deque[ConsoleLogEntry] = deque(maxlen=max_entries)
        self.dropped: int = 0

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: ConsoleLogEntry) -> None:
        if self.max_entries is not None and len(self._entries) == self.max_entries:
            if self.dropped == 0:
                logger.warning(
                    f"Console buffer full ({self.max_entries} entries), "
                    "evicting oldest entries"
                )
            self.dropped += 1
        self._entries.append(entry)

    def snapshot(self) -> list[ConsoleLogEntry]:
        """Return all entries in arrival order without removing them."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self.dropped = 0
