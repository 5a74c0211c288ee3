"""
Configuration for the launcher.

Loads settings from environment variables with sensible defaults.
The artifact, its config file and any extracted runtime live in the
working directory (LAUNCHER_DIR, the current directory by default).
"""

import os
import platform
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_JAR_URL = (
    "https://github.com/MCXboxBroadcast/Broadcaster/releases/download/129/"
    "MCXboxBroadcastStandalone.jar"
)

ADOPTIUM_BINARY_URL = (
    "https://api.adoptium.net/v3/binary/latest/{major}/ga/linux/{arch}/jre/hotspot/normal/eclipse"
)

# Written before every launch. The child may persist its own edits; they are
# overwritten on the next restart.
DEFAULT_CONFIG_BLOB = """\
# Managed by jarlauncher. This file is rewritten before every launch.
session:
  update-interval: 30
  query-server: true
  web-query-fallback: false
  session-info:
    host-name: "Bedrock Server"
    world-name: "Broadcast"
    players: 0
    max-players: 20
    ip: 127.0.0.1
    port: 19132
friend-sync:
  update-interval: 60
  auto-follow: true
  auto-unfollow: true
  initial-invite: true
  should-expire: true
  expire-days: 15
  expire-check: 1800
slack-webhook:
  enabled: false
debug-log: false
suppress-session-update-message: false
"""


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def host_arch() -> str:
    """Map the machine architecture to the vendor's naming."""
    machine = platform.machine().lower()
    if machine in ("x86_64", "amd64"):
        return "x64"
    if machine in ("aarch64", "arm64"):
        return "aarch64"
    return machine


@dataclass
class Config:
    """Launcher configuration."""

    # Paths
    work_dir: Path = Path(os.environ.get("LAUNCHER_DIR", "."))
    jar_path: Path = None
    config_path: Path = None
    runtime_dir: Path = None
    launcher_log: Path = None

    # Logging
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(5 * 1024 * 1024)))  # 5MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "3"))
    log_buffer_size: int = int(os.environ.get("LOG_BUFFER_SIZE", "300"))

    # Server
    host: str = os.environ.get("HOST", "0.0.0.0")
    port: int = int(os.environ.get("PORT", "8080"))

    # Artifact
    jar_url: str = os.environ.get("JAR_URL", DEFAULT_JAR_URL)
    jar_name: str = os.environ.get("JAR_NAME", "MCXboxBroadcastStandalone.jar")
    download_timeout: int = int(os.environ.get("DOWNLOAD_TIMEOUT", "60"))
    max_redirects: int = int(os.environ.get("MAX_REDIRECTS", "10"))

    # Child configuration
    config_name: str = os.environ.get("CONFIG_NAME", "config.yml")
    config_template: str = os.environ.get("CONFIG_TEMPLATE", "")
    config_blob: str = None
    pass_config_flag: bool = _env_bool("PASS_CONFIG_FLAG", "true")

    # Runtime
    java_command: str = os.environ.get("JAVA_COMMAND", "java")
    java_opts: str = os.environ.get("JAVA_OPTS", "")
    java_version: int = int(os.environ.get("JAVA_VERSION", "17"))
    java_package: str = os.environ.get("JAVA_PACKAGE", "")
    runtime_bundle_url: str = os.environ.get("RUNTIME_BUNDLE_URL", "")
    install_timeout: int = int(os.environ.get("INSTALL_TIMEOUT", "120"))

    # Process management
    restart_delay: float = float(os.environ.get("RESTART_DELAY", "10"))
    max_restarts: int = int(os.environ.get("MAX_RESTARTS", "0"))  # 0 = unlimited
    restart_on_spawn_failure: bool = _env_bool("RESTART_ON_SPAWN_FAILURE", "false")
    shutdown_timeout: int = int(os.environ.get("SHUTDOWN_TIMEOUT", "10"))

    def __post_init__(self):
        """Initialize derived paths, the config blob and the working directory."""
        self.work_dir = Path(self.work_dir).resolve()
        if self.jar_path is None:
            self.jar_path = self.work_dir / self.jar_name
        if self.config_path is None:
            self.config_path = self.work_dir / self.config_name
        if self.runtime_dir is None:
            self.runtime_dir = self.work_dir / "runtime"
        if self.launcher_log is None:
            self.launcher_log = self.work_dir / "launcher.log"

        if not self.java_package:
            self.java_package = f"openjdk-{self.java_version}-jre-headless"
        if not self.runtime_bundle_url:
            self.runtime_bundle_url = ADOPTIUM_BINARY_URL.format(
                major=self.java_version, arch=host_arch()
            )

        if self.config_blob is None:
            if self.config_template:
                self.config_blob = Path(self.config_template).read_text()
            else:
                self.config_blob = DEFAULT_CONFIG_BLOB

        # Create directories
        self.work_dir.mkdir(parents=True, exist_ok=True)


config = Config()
