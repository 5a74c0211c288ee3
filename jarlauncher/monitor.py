"""
Resource snapshot for the status page.

Collects resident memory for the launcher and the supervised child, the
launcher uptime and a listing of the working directory with sizes.
"""

import logging
import os
from pathlib import Path

import psutil

from .state import LauncherState

logger = logging.getLogger(__name__)


def get_directory_size(path: str) -> float:
    """Get total size of a directory in MB."""
    total = 0
    try:
        for dirpath, dirnames, filenames in os.walk(path):
            for filename in filenames:
                filepath = os.path.join(dirpath, filename)
                try:
                    total += os.path.getsize(filepath)
                except OSError:
                    pass
    except OSError:
        pass
    return total / 1024 / 1024  # Convert to MB


def list_directory(path: Path) -> list[dict]:
    """List entries of the working directory, directories first."""
    entries = []
    try:
        children = sorted(Path(path).iterdir(), key=lambda p: (not p.is_dir(), p.name))
    except OSError as e:
        logger.warning(f"Cannot list {path}: {e}")
        return entries

    for child in children:
        try:
            size_mb = get_directory_size(str(child)) if child.is_dir() else child.stat().st_size / 1024 / 1024
        except OSError:
            size_mb = 0.0
        entries.append({
            "name": child.name,
            "is_dir": child.is_dir(),
            "size_mb": round(size_mb, 2),
        })
    return entries


def process_memory_mb(pid: int) -> float:
    """Resident memory of a process and its children in MB."""
    try:
        proc = psutil.Process(pid)
        memory_mb = proc.memory_info().rss / 1024 / 1024
        try:
            for child in proc.children(recursive=True):
                memory_mb += child.memory_info().rss / 1024 / 1024
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
        return memory_mb
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return 0.0


def get_current_metrics(state: LauncherState, work_dir: Path) -> dict:
    """Snapshot used by /api/status and the dashboard."""
    launcher_mb = psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024
    pid = state.child_pid
    child_mb = process_memory_mb(pid) if pid else 0.0

    return {
        "status": state.status.value,
        "status_text": state.status_text,
        "exit_code": state.exit_code,
        "runtime": state.runtime_path,
        "pid": pid,
        "restart_count": state.restart_count,
        "uptime_seconds": round(state.uptime_seconds(), 1),
        "launcher_memory_mb": round(launcher_mb, 1),
        "child_memory_mb": round(child_mb, 1),
        "work_dir": str(work_dir),
        "files": list_directory(work_dir),
    }
