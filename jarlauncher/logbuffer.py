"""
In-memory log ring buffer.

Holds the most recent launcher and child-process log lines so the status
server can show them without touching disk. Appends and snapshots are
guarded by a single lock; the oldest entries are evicted first.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

DEFAULT_MAX_ENTRIES = 300


@dataclass(frozen=True)
class LogEntry:
    """A single timestamped log line."""

    message: str
    timestamp: datetime = field(default_factory=datetime.now)

    def format(self) -> str:
        return f"[{self.timestamp.isoformat(timespec='seconds')}] {self.message}"

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
        }


class LogBuffer:
    """Bounded, append-only, thread-safe log store."""

    def __init__(self, maxlen: int = DEFAULT_MAX_ENTRIES):
        if maxlen < 1:
            raise ValueError("maxlen must be at least 1")
        self._entries: deque[LogEntry] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    @property
    def maxlen(self) -> int:
        return self._entries.maxlen

    def append(self, message: str) -> LogEntry:
        """Append a message, evicting the oldest entry when full."""
        with self._lock:
            entry = LogEntry(message=message)
            self._entries.append(entry)
        return entry

    def snapshot(self) -> list[LogEntry]:
        """Return a point-in-time copy of the buffer in arrival order."""
        with self._lock:
            return list(self._entries)

    def lines(self) -> list[str]:
        return [entry.format() for entry in self.snapshot()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
