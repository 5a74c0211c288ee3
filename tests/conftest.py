"""Pytest configuration and fixtures."""

import stat
from pathlib import Path

import httpx
import pytest

from jarlauncher.config import Config
from jarlauncher.state import LauncherState

CONFIG_BLOB = "session:\n  host-name: \"Test\"\ndebug-log: false\n"


@pytest.fixture
def config(tmp_path):
    """Config rooted in a temporary working directory."""
    return Config(
        work_dir=tmp_path,
        jar_url="https://example.com/releases/app.jar",
        jar_name="app.jar",
        config_blob=CONFIG_BLOB,
        restart_delay=0,
        max_restarts=1,
        shutdown_timeout=2,
        runtime_bundle_url="https://example.com/runtime.tar.gz",
    )


@pytest.fixture
def state():
    return LauncherState(log_buffer_size=100)


@pytest.fixture
def make_java(tmp_path):
    """Write an executable shell script standing in for the java binary."""

    def _make(body: str, name: str = "java") -> Path:
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def mock_client():
    """Build an httpx client backed by a handler function."""
    clients = []

    def _make(handler) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()
