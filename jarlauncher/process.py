"""
Child process supervision.

Runs the downloaded jar as a child process, captures its stdout/stderr
into the shared log buffer and restarts it after a fixed delay whenever
it exits. The config file is rewritten before every launch so the child
always sees the configured content, whatever it persisted last time.
"""

import asyncio
import logging
import os
import shlex
import signal
import subprocess
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from .state import LauncherState, Status

logger = logging.getLogger(__name__)
child_logger = logging.getLogger("jarlauncher.child")

STDOUT_TAG = "[CHILD]"
STDERR_TAG = "[CHILD-ERR]"


class SpawnError(Exception):
    """The child process could not be started."""


class ExecutableNotFound(SpawnError):
    pass


class SpawnPermissionDenied(SpawnError):
    pass


@dataclass
class ProcessInfo:
    """Information about the running child."""

    process: subprocess.Popen
    readers: list[threading.Thread] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)


class Supervisor:
    """Owns the child process lifecycle: spawn, monitor, restart."""

    def __init__(
        self,
        state: LauncherState,
        runtime: str,
        jar_path: Path,
        config_path: Path,
        config_blob: str,
        restart_delay: float = 10,
        max_restarts: int = 0,
        restart_on_spawn_failure: bool = False,
        shutdown_timeout: float = 10,
        java_opts: str = "",
        pass_config_flag: bool = True,
    ):
        self.state = state
        self.runtime = runtime
        self.jar_path = Path(jar_path)
        self.config_path = Path(config_path)
        self.config_blob = config_blob
        self.restart_delay = restart_delay
        self.max_restarts = max_restarts
        self.restart_on_spawn_failure = restart_on_spawn_failure
        self.shutdown_timeout = shutdown_timeout
        self.java_opts = java_opts
        self.pass_config_flag = pass_config_flag

        self._info: Optional[ProcessInfo] = None
        self._lock = threading.Lock()
        self._stopping = asyncio.Event()
        self._stop_requested = False

    def command(self) -> list[str]:
        cmd = [self.runtime, *shlex.split(self.java_opts), "-jar", str(self.jar_path)]
        if self.pass_config_flag:
            cmd += ["--config", str(self.config_path)]
        return cmd

    def write_config(self):
        """Overwrite the child's config file with the configured blob."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(self.config_blob)
        logger.debug(f"Wrote {len(self.config_blob)} bytes to {self.config_path}")

    def start(self) -> subprocess.Popen:
        """Spawn the child with captured output. Raises SpawnError."""
        cmd = self.command()
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.jar_path.parent,
                start_new_session=True,  # Own process group for signal forwarding
            )
        except FileNotFoundError as e:
            raise ExecutableNotFound(f"{cmd[0]}: {e.strerror}") from e
        except PermissionError as e:
            raise SpawnPermissionDenied(f"{cmd[0]}: {e.strerror}") from e
        except OSError as e:
            raise SpawnError(f"{cmd[0]}: {e}") from e

        readers = [
            threading.Thread(
                target=self._capture_output,
                args=(process.stdout, STDOUT_TAG, logging.INFO),
                daemon=True,
            ),
            threading.Thread(
                target=self._capture_output,
                args=(process.stderr, STDERR_TAG, logging.WARNING),
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        with self._lock:
            self._info = ProcessInfo(process=process, readers=readers)
        self.state.child_pid = process.pid
        self.state.set_status(Status.RUNNING)
        self.state.log(f"Starting {self.jar_path.name} (PID {process.pid})", log=logger)
        return process

    def _capture_output(self, stream, tag: str, level: int):
        """Forward each line of a child stream into the log buffer."""
        try:
            for line in iter(stream.readline, b""):
                decoded = line.decode("utf-8", errors="replace").rstrip()
                if not decoded:
                    continue
                self.state.log(f"{tag} {decoded}", level, child_logger)
        except (OSError, ValueError) as e:
            logger.error(f"Error capturing child output: {e}")
        finally:
            stream.close()

    def _wait(self, info: ProcessInfo) -> int:
        code = info.process.wait()
        # Drain output before the exit is logged.
        for reader in info.readers:
            reader.join()
        return code

    def is_running(self) -> bool:
        with self._lock:
            info = self._info
        return info is not None and info.process.poll() is None

    def get_pid(self) -> Optional[int]:
        with self._lock:
            info = self._info
        if info and info.process.poll() is None:
            return info.process.pid
        return None

    def get_info(self) -> Optional[ProcessInfo]:
        with self._lock:
            return self._info

    async def _sleep(self, delay: float) -> bool:
        """Wait out the restart delay. Returns True if a stop was requested."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def run(self):
        """Launch the child and keep relaunching it until stopped."""
        attempts = 0

        while not self._stop_requested:
            self.write_config()
            try:
                self.start()
                info = self.get_info()
            except SpawnError as e:
                self.state.log(f"Failed to start child: {e}", logging.ERROR, logger)
                self.state.set_status(Status.ERROR)
                if not self.restart_on_spawn_failure:
                    return
            else:
                code = await asyncio.to_thread(self._wait, info)
                self.state.child_pid = None
                self.state.log(f"Child exited with code {code}", logging.WARNING, logger)
                self.state.set_status(Status.STOPPED, exit_code=code)

            if self._stop_requested:
                break

            if self.max_restarts and attempts >= self.max_restarts:
                self.state.log(
                    f"Child exceeded {self.max_restarts} restart attempts, giving up",
                    logging.ERROR,
                    logger,
                )
                self.state.set_status(Status.ERROR)
                return

            if await self._sleep(self.restart_delay):
                break

            attempts += 1
            self.state.restart_count = attempts
            self.state.log(f"Restarting child (attempt {attempts})", logging.INFO, logger)

    def request_stop(self):
        """Stop the restart loop; the running child is left to stop()."""
        self._stop_requested = True
        self._stopping.set()

    def stop(self, timeout: float = None) -> Optional[int]:
        """Forward SIGTERM to the child, then SIGKILL after the timeout."""
        # Runs off the event loop thread; request_stop() sets the asyncio event.
        self._stop_requested = True
        timeout = self.shutdown_timeout if timeout is None else timeout

        with self._lock:
            info = self._info
        if info is None or info.process.poll() is not None:
            return None

        process = info.process
        self.state.log(f"Stopping child (PID {process.pid})", log=logger)
        try:
            os.killpg(os.getpgid(process.pid), signal.SIGTERM)
        except ProcessLookupError:
            pass

        try:
            return process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self.state.log("Child did not stop gracefully, forcing kill", logging.WARNING, logger)
            try:
                os.killpg(os.getpgid(process.pid), signal.SIGKILL)
            except ProcessLookupError:
                pass
            return process.wait(timeout=5)

    def run_once(self) -> int:
        """Run the child a single time with inherited stdio and return its exit code."""
        self.write_config()
        cmd = self.command()
        try:
            process = subprocess.Popen(cmd, cwd=self.jar_path.parent)
        except FileNotFoundError as e:
            raise ExecutableNotFound(f"{cmd[0]}: {e.strerror}") from e
        except PermissionError as e:
            raise SpawnPermissionDenied(f"{cmd[0]}: {e.strerror}") from e
        except OSError as e:
            raise SpawnError(f"{cmd[0]}: {e}") from e

        self.state.child_pid = process.pid
        self.state.set_status(Status.RUNNING)
        self.state.log(f"Starting {self.jar_path.name} (PID {process.pid})", log=logger)

        def forward(signum, frame):
            if process.poll() is None:
                process.send_signal(signum)

        previous = {sig: signal.signal(sig, forward) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            code = process.wait()
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        self.state.set_status(Status.STOPPED, exit_code=code)
        self.state.log(f"Child exited with code {code}", log=logger)
        return code
