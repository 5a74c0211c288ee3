"""Shared test helpers."""

import stat
from pathlib import Path

from jarlauncher.state import LauncherState


def messages(state: LauncherState) -> list[str]:
    return [entry.message for entry in state.logs.snapshot()]


def write_unexecutable_binary(path: Path) -> Path:
    """Executable bit set, but neither a script nor a valid binary (ENOEXEC)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x00\x01\x02garbage")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path
