"""
Shared launcher state.

A single LauncherState is created at startup and passed to the launcher,
the supervisor and the status server. It owns the log buffer and the
current status cell; the status is overwritten, never queued.
"""

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Optional

from .logbuffer import DEFAULT_MAX_ENTRIES, LogBuffer

logger = logging.getLogger("jarlauncher")


class Status(Enum):
    STARTING = "starting"
    INSTALLING_RUNTIME = "installing-runtime"
    DOWNLOADING = "downloading"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


class LauncherState:
    """Status cell plus log buffer shared between launcher and server."""

    def __init__(self, log_buffer_size: int = DEFAULT_MAX_ENTRIES):
        self.logs = LogBuffer(log_buffer_size)
        self.started_at = datetime.now()
        self._lock = threading.Lock()
        self._status = Status.STARTING
        self._exit_code: Optional[int] = None
        self._runtime_path: Optional[str] = None
        self.child_pid: Optional[int] = None
        self.restart_count = 0

    @property
    def status(self) -> Status:
        with self._lock:
            return self._status

    @property
    def exit_code(self) -> Optional[int]:
        with self._lock:
            return self._exit_code

    @property
    def status_text(self) -> str:
        """Status as shown on /health, e.g. "running" or "stopped (exit 1)"."""
        with self._lock:
            if self._status == Status.STOPPED and self._exit_code is not None:
                return f"{self._status.value} (exit {self._exit_code})"
            return self._status.value

    def set_status(self, status: Status, exit_code: Optional[int] = None):
        with self._lock:
            self._status = status
            self._exit_code = exit_code

    @property
    def runtime_path(self) -> Optional[str]:
        return self._runtime_path

    @runtime_path.setter
    def runtime_path(self, value: str):
        # Resolved once; child respawns reuse it.
        with self._lock:
            if self._runtime_path is not None and self._runtime_path != value:
                raise RuntimeError(f"Runtime already resolved to {self._runtime_path}")
            self._runtime_path = value

    def log(self, message: str, level: int = logging.INFO, log: logging.Logger = None):
        """Append to the log buffer and emit through logging."""
        self.logs.append(message)
        (log or logger).log(level, message)

    def uptime_seconds(self) -> float:
        return (datetime.now() - self.started_at).total_seconds()
