"""Tests for the launcher startup sequence."""

import asyncio
import threading
import time

import httpx
import pytest

from jarlauncher.fetcher import CHUNK_SIZE
from jarlauncher.launcher import Launcher
from jarlauncher.runtime import RuntimeProvisioner
from jarlauncher.state import Status
from tests.conftest import CONFIG_BLOB
from tests.helpers import messages, write_unexecutable_binary


def provisioner_for(state, java):
    """Provisioner whose probe finds the given executable."""
    return RuntimeProvisioner(state, java_command=str(java), strategies=[])


class BrokenProvisioner:
    """Fails with an error outside the provisioning and download hierarchy."""

    def ensure_runtime(self):
        raise RuntimeError("runtime lookup crashed")


class EndlessStream(httpx.SyncByteStream):
    """Keeps sending chunks until the response is closed."""

    def __init__(self):
        self.closed = threading.Event()

    def __iter__(self):
        for _ in range(10_000):
            if self.closed.is_set():
                return
            yield b"x" * CHUNK_SIZE
            time.sleep(0.01)

    def close(self):
        self.closed.set()


class TestLauncher:
    """Tests for Launcher.run()."""

    @pytest.mark.asyncio
    async def test_downloads_then_supervises(self, config, state, make_java, mock_client):
        java = make_java("echo started\nexit 0")
        requests = []

        def handler(request):
            requests.append(request.url.path)
            if request.url.path == "/releases/app.jar":
                return httpx.Response(302, headers={"Location": "https://objects.example.com/blob"})
            return httpx.Response(200, content=b"jar-bytes")

        launcher = Launcher(config, state, client=mock_client(handler), provisioner=provisioner_for(state, java))
        await launcher.run()

        assert config.jar_path.read_bytes() == b"jar-bytes"
        assert requests == ["/releases/app.jar", "/blob"]
        assert config.config_path.read_text() == CONFIG_BLOB
        assert state.runtime_path == str(java)
        logged = messages(state)
        assert "[CHILD] started" in logged
        assert len([m for m in logged if m.startswith("Restarting child")]) == 1

    @pytest.mark.asyncio
    async def test_existing_jar_is_not_downloaded(self, config, state, make_java, mock_client):
        config.jar_path.write_bytes(b"cached")
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        java = make_java("exit 0")
        launcher = Launcher(config, state, client=mock_client(handler), provisioner=provisioner_for(state, java))
        await launcher.run()

        assert calls == []
        assert config.jar_path.read_bytes() == b"cached"
        assert "app.jar already present, skipping download" in messages(state)

    @pytest.mark.asyncio
    async def test_download_failure_is_fatal_to_startup(self, config, state, make_java, mock_client):
        client = mock_client(lambda request: httpx.Response(404))
        java = make_java("exit 0")
        launcher = Launcher(config, state, client=client, provisioner=provisioner_for(state, java))

        await launcher.run()

        assert state.status == Status.ERROR
        assert launcher.supervisor is None
        assert not config.jar_path.exists()
        assert any(m.startswith("Startup failed") and "404" in m for m in messages(state))

    @pytest.mark.asyncio
    async def test_missing_runtime_is_fatal_to_startup(self, config, state, mock_client):
        provisioner = RuntimeProvisioner(state, java_command="no-such-java-xyz", strategies=[])
        launcher = Launcher(config, state, client=mock_client(lambda r: httpx.Response(200)), provisioner=provisioner)

        await launcher.run()

        assert state.status == Status.ERROR
        assert not config.jar_path.exists()

    @pytest.mark.asyncio
    async def test_shutdown_stops_child(self, config, state, make_java):
        config.jar_path.write_bytes(b"cached")
        java = make_java("trap 'exit 0' TERM\necho ready\nwhile true; do sleep 0.1; done")
        launcher = Launcher(config, state, provisioner=provisioner_for(state, java))

        task = launcher.start()

        for _ in range(100):
            if "[CHILD] ready" in messages(state):
                break
            await asyncio.sleep(0.05)

        await launcher.shutdown()

        assert task.done()
        assert launcher.supervisor is not None
        assert not launcher.supervisor.is_running()


    @pytest.mark.asyncio
    async def test_malformed_jar_url_is_fatal_to_startup(self, config, state, make_java, mock_client):
        config.jar_url = "https://example.com:abc/app.jar"
        java = make_java("exit 0")
        client = mock_client(lambda request: httpx.Response(200, content=b"jar-bytes"))
        launcher = Launcher(config, state, client=client, provisioner=provisioner_for(state, java))

        await launcher.run()

        assert state.status == Status.ERROR
        assert launcher.supervisor is None
        assert not config.jar_path.exists()
        assert any(m.startswith("Startup failed") for m in messages(state))

    @pytest.mark.asyncio
    async def test_unexpected_startup_error_sets_error(self, config, state):
        launcher = Launcher(config, state, provisioner=BrokenProvisioner())

        await launcher.run()

        assert state.status == Status.ERROR
        assert launcher.supervisor is None
        assert any(m.startswith("Startup failed") and "runtime lookup crashed" in m for m in messages(state))

    @pytest.mark.asyncio
    async def test_shutdown_during_download_stops_the_transfer(self, config, state, make_java, mock_client):
        stream = EndlessStream()
        client = mock_client(lambda request: httpx.Response(200, stream=stream))
        java = make_java("exit 0")
        launcher = Launcher(config, state, client=client, provisioner=provisioner_for(state, java))

        task = launcher.start()
        for _ in range(100):
            if state.status == Status.DOWNLOADING:
                break
            await asyncio.sleep(0.05)

        await launcher.shutdown()

        assert task.done()
        assert await asyncio.to_thread(stream.closed.wait, 5)
        assert not config.jar_path.exists()
        assert not config.jar_path.with_name("app.jar.part").exists()
        assert launcher.supervisor is None


class TestRunOnce:
    def test_returns_exit_code(self, config, state, make_java):
        config.jar_path.write_bytes(b"cached")
        launcher = Launcher(config, state, provisioner=provisioner_for(state, make_java("exit 4")))

        assert launcher.run_once() == 4

    def test_startup_failure(self, config, state):
        provisioner = RuntimeProvisioner(state, java_command="no-such-java-xyz", strategies=[])
        assert Launcher(config, state, provisioner=provisioner).run_once() == 1
        assert state.status == Status.ERROR

    def test_unexpected_startup_error(self, config, state):
        assert Launcher(config, state, provisioner=BrokenProvisioner()).run_once() == 1
        assert state.status == Status.ERROR
        assert any(m.startswith("Startup failed") for m in messages(state))

    def test_unexecutable_runtime(self, config, state):
        config.jar_path.write_bytes(b"cached")
        java = write_unexecutable_binary(config.work_dir / "bin" / "java")
        launcher = Launcher(config, state, provisioner=provisioner_for(state, java))

        assert launcher.run_once() == 1
        assert state.status == Status.ERROR
        assert any(m.startswith("Failed to start child") for m in messages(state))
