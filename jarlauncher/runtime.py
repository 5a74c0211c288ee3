"""
Java runtime provisioning.

Looks for a usable java on PATH (or a bundle extracted by a previous run)
and, failing that, walks an ordered list of install strategies until one
produces an executable:

1. the system package manager (apt-get) installing a headless JRE
2. a vendor runtime bundle downloaded and extracted into the runtime dir
"""

import logging
import os
import shutil
import subprocess
import tarfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import httpx

from .config import Config
from .fetcher import FetchError, fetch
from .state import LauncherState, Status

logger = logging.getLogger(__name__)

JAVA_RELATIVE_PATH = Path("bin") / "java"


class ProvisionError(Exception):
    """No strategy could provide a runtime."""


@dataclass
class ProvisionResult:
    """Outcome of a single provisioning strategy."""

    strategy: str
    executable: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.executable is not None


class ProvisionStrategy(Protocol):
    name: str

    def provision(self, state: LauncherState) -> ProvisionResult:
        ...


def find_java_in_tree(root: Path, relative: Path = JAVA_RELATIVE_PATH) -> Optional[Path]:
    """
    Find the java binary in an extracted runtime.

    Archives usually nest everything one directory deep (jdk-17.0.x-jre/),
    so the root itself and its immediate subdirectories are checked.
    """
    root = Path(root)
    if not root.is_dir():
        return None

    candidates = [root / relative]
    candidates.extend(sorted(p / relative for p in root.iterdir() if p.is_dir()))
    for candidate in candidates:
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return candidate
    return None


class PackageManagerStrategy:
    """Install a headless JRE with apt-get."""

    name = "package-manager"

    def __init__(self, java_command: str, package: str, timeout: int = 120, commands: list[list[str]] = None):
        self.java_command = java_command
        self.package = package
        self.timeout = timeout
        self.commands = commands or [
            ["apt-get", "update"],
            ["apt-get", "install", "-y", "--no-install-recommends", package],
        ]

    def provision(self, state: LauncherState) -> ProvisionResult:
        for cmd in self.commands:
            state.log(f"Running: {' '.join(cmd)}", log=logger)
            try:
                subprocess.run(
                    cmd,
                    check=True,
                    capture_output=True,
                    timeout=self.timeout,
                )
            except FileNotFoundError:
                return ProvisionResult(self.name, error=f"{cmd[0]} not found")
            except PermissionError as e:
                return ProvisionResult(self.name, error=f"permission denied: {e}")
            except subprocess.TimeoutExpired:
                return ProvisionResult(self.name, error=f"{cmd[0]} timed out after {self.timeout}s")
            except subprocess.CalledProcessError as e:
                stderr = (e.stderr or b"").decode("utf-8", errors="replace").strip()
                detail = stderr.splitlines()[-1] if stderr else ""
                return ProvisionResult(self.name, error=f"{cmd[0]} exited with {e.returncode} {detail}".strip())

        if shutil.which(self.java_command) is None:
            return ProvisionResult(self.name, error=f"{self.java_command} still not on PATH after install")
        return ProvisionResult(self.name, executable=self.java_command)


class BundleStrategy:
    """Download a vendor runtime archive and extract it locally."""

    name = "bundle"

    def __init__(
        self,
        url: str,
        runtime_dir: Path,
        client: httpx.Client = None,
        timeout: float = 60,
        max_redirects: int = 10,
        cancel: threading.Event = None,
    ):
        self.url = url
        self.runtime_dir = Path(runtime_dir)
        self.client = client
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.cancel = cancel

    def provision(self, state: LauncherState) -> ProvisionResult:
        self.runtime_dir.mkdir(parents=True, exist_ok=True)
        archive = self.runtime_dir / "runtime.tar.gz"
        state.log(f"Downloading runtime bundle from {self.url}", log=logger)

        try:
            fetch(
                self.url,
                archive,
                client=self.client,
                state=state,
                max_redirects=self.max_redirects,
                timeout=self.timeout,
                overwrite=True,
                cancel=self.cancel,
            )
            shutil.unpack_archive(str(archive), str(self.runtime_dir))
        except (FetchError, OSError, tarfile.TarError) as e:
            return ProvisionResult(self.name, error=str(e))
        finally:
            archive.unlink(missing_ok=True)

        java = find_java_in_tree(self.runtime_dir)
        if java is None:
            return ProvisionResult(self.name, error=f"no {JAVA_RELATIVE_PATH} in extracted bundle")
        return ProvisionResult(self.name, executable=str(java))


def default_strategies(
    config: Config, client: httpx.Client = None, cancel: threading.Event = None
) -> list[ProvisionStrategy]:
    return [
        PackageManagerStrategy(config.java_command, config.java_package, timeout=config.install_timeout),
        BundleStrategy(
            config.runtime_bundle_url,
            config.runtime_dir,
            client=client,
            timeout=config.download_timeout,
            max_redirects=config.max_redirects,
            cancel=cancel,
        ),
    ]


class RuntimeProvisioner:
    """Resolves the java executable, installing one if needed."""

    def __init__(
        self,
        state: LauncherState,
        java_command: str = "java",
        runtime_dir: Path = None,
        strategies: list[ProvisionStrategy] = None,
    ):
        self.state = state
        self.java_command = java_command
        self.runtime_dir = Path(runtime_dir) if runtime_dir else None
        self.strategies = strategies if strategies is not None else []

    @classmethod
    def from_config(
        cls,
        config: Config,
        state: LauncherState,
        client: httpx.Client = None,
        cancel: threading.Event = None,
    ) -> "RuntimeProvisioner":
        return cls(
            state,
            java_command=config.java_command,
            runtime_dir=config.runtime_dir,
            strategies=default_strategies(config, client, cancel),
        )

    def probe(self) -> Optional[str]:
        """Return an already available runtime, if any."""
        if shutil.which(self.java_command):
            return self.java_command
        if self.runtime_dir is not None:
            java = find_java_in_tree(self.runtime_dir)
            if java is not None:
                return str(java)
        return None

    def ensure_runtime(self) -> str:
        """Return the java executable, trying each strategy in order."""
        existing = self.probe()
        if existing:
            self.state.log(f"Using Java runtime: {existing}", log=logger)
            return existing

        self.state.set_status(Status.INSTALLING_RUNTIME)
        self.state.log(f"{self.java_command} not found, installing a runtime", logging.WARNING, logger)

        for strategy in self.strategies:
            self.state.log(f"Trying runtime strategy: {strategy.name}", log=logger)
            result = strategy.provision(self.state)
            if result.ok:
                self.state.log(f"Runtime installed via {result.strategy}: {result.executable}", log=logger)
                return result.executable
            self.state.log(f"Runtime strategy {result.strategy} failed: {result.error}", logging.WARNING, logger)

        raise ProvisionError("No Java runtime available and every install strategy failed")
