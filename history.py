"""In-memory command history."""

from __future__ import annotations

import threading

from models import CommandRecord


class InMemoryHistoryStore:
    def __init__(self, limit: int = 100) -> None:
        self._limit = limit
        self._records: list[CommandRecord] = []
        self._lock = threading.Lock()

    def append(self, record: CommandRecord) -> None:
        with self._lock:
            self._records.insert(0, record)
            del self._records[self._limit:]

    def records(self) -> tuple[CommandRecord, ...]:
        """Newest first."""
        with self._lock:
            return tuple(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
