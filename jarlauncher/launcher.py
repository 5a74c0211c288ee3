"""
Startup sequence.

Provisions the Java runtime, downloads the jar if it is missing and hands
over to the supervisor. Startup failures are fatal to this sequence only:
they are logged, the status is set to error and the status server keeps
running so the failure stays visible.
"""

import asyncio
import logging
import threading

import httpx

from .config import Config
from .fetcher import FetchError, fetch
from .process import SpawnError, Supervisor
from .runtime import ProvisionError, RuntimeProvisioner
from .state import LauncherState, Status

logger = logging.getLogger(__name__)


class Launcher:
    """Runs provision -> fetch -> supervise against a shared state."""

    def __init__(
        self,
        config: Config,
        state: LauncherState,
        client: httpx.Client = None,
        provisioner: RuntimeProvisioner = None,
    ):
        self.config = config
        self.state = state
        self.client = client
        self._cancel = threading.Event()
        self.provisioner = provisioner or RuntimeProvisioner.from_config(
            config, state, client, cancel=self._cancel
        )
        self.supervisor: Supervisor | None = None
        self._task: asyncio.Task | None = None

    def fetch_artifact(self):
        """Download the jar unless it is already on disk."""
        jar_path = self.config.jar_path
        if jar_path.exists():
            self.state.log(f"{jar_path.name} already present, skipping download", log=logger)
            return

        self.state.set_status(Status.DOWNLOADING)
        self.state.log(f"Downloading {self.config.jar_url}", log=logger)
        fetch(
            self.config.jar_url,
            jar_path,
            client=self.client,
            state=self.state,
            max_redirects=self.config.max_redirects,
            timeout=self.config.download_timeout,
            cancel=self._cancel,
        )
        self.state.log("Download complete", log=logger)

    def prepare(self) -> str:
        """Resolve the runtime and make sure the jar exists. Returns the runtime."""
        runtime = self.provisioner.ensure_runtime()
        self.state.runtime_path = runtime
        self.fetch_artifact()
        return runtime

    def make_supervisor(self, runtime: str) -> Supervisor:
        return Supervisor(
            self.state,
            runtime,
            self.config.jar_path,
            self.config.config_path,
            self.config.config_blob,
            restart_delay=self.config.restart_delay,
            max_restarts=self.config.max_restarts,
            restart_on_spawn_failure=self.config.restart_on_spawn_failure,
            shutdown_timeout=self.config.shutdown_timeout,
            java_opts=self.config.java_opts,
            pass_config_flag=self.config.pass_config_flag,
        )

    async def run(self):
        """Full startup followed by the supervisor loop."""
        self.state.log("Launcher starting", log=logger)
        try:
            runtime = await asyncio.to_thread(self.prepare)
        except (ProvisionError, FetchError, OSError) as e:
            self.state.log(f"Startup failed: {e}", logging.ERROR, logger)
            self.state.set_status(Status.ERROR)
            return
        except Exception as e:
            self.state.log(f"Startup failed: {e!r}", logging.ERROR, logger)
            self.state.set_status(Status.ERROR)
            logger.debug("Startup traceback", exc_info=True)
            return

        self.supervisor = self.make_supervisor(runtime)
        try:
            await self.supervisor.run()
        except Exception as e:
            self.state.log(f"Supervisor failed: {e}", logging.ERROR, logger)
            self.state.set_status(Status.ERROR)
            logger.debug("Supervisor traceback", exc_info=True)

    def start(self) -> asyncio.Task:
        """Run the launcher as a background task on the current loop."""
        self._task = asyncio.create_task(self.run())
        return self._task

    async def shutdown(self):
        """Forward termination to the child and wind down the task."""
        self._cancel.set()
        if self.supervisor is not None:
            self.supervisor.request_stop()
            await asyncio.to_thread(self.supervisor.stop)

        if self._task is None or self._task.done():
            return
        if self.supervisor is None:
            # Still provisioning or downloading; the worker thread stops at the next chunk
            self._task.cancel()
        try:
            await asyncio.wait_for(self._task, timeout=self.config.shutdown_timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            pass

    def run_once(self) -> int:
        """Single-shot mode: no restarts, child inherits stdio."""
        try:
            runtime = self.prepare()
        except (ProvisionError, FetchError, OSError) as e:
            self.state.log(f"Startup failed: {e}", logging.ERROR, logger)
            self.state.set_status(Status.ERROR)
            return 1
        except Exception as e:
            self.state.log(f"Startup failed: {e!r}", logging.ERROR, logger)
            self.state.set_status(Status.ERROR)
            logger.debug("Startup traceback", exc_info=True)
            return 1

        self.supervisor = self.make_supervisor(runtime)
        try:
            return self.supervisor.run_once()
        except SpawnError as e:
            self.state.log(f"Failed to start child: {e}", logging.ERROR, logger)
            self.state.set_status(Status.ERROR)
            return 1
