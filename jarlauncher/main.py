"""
Launcher status server.

FastAPI application exposing health, logs, config and a small dashboard.
The launcher itself runs as a background task started from the lifespan
handler, so the server answers health checks immediately and stays up
whatever happens to the child process.
"""

import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from . import __version__
from .config import Config
from .config import config as default_config
from .launcher import Launcher
from .monitor import get_current_metrics
from .state import LauncherState

logger = logging.getLogger(__name__)

NO_CONFIG_PLACEHOLDER = "No config file has been written yet."
DASHBOARD_LOG_LINES = 50

templates_dir = Path(__file__).parent / "templates"
templates = Jinja2Templates(directory=str(templates_dir)) if templates_dir.exists() else None


def setup_logging(config: Config):
    """Configure root logging with rotation."""
    log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Rotating file handler (auto-compaction)
    file_handler = RotatingFileHandler(
        config.launcher_log,
        maxBytes=config.log_max_bytes,
        backupCount=config.log_backup_count,
    )
    file_handler.setFormatter(log_formatter)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)

    logging.basicConfig(
        level=logging.INFO,
        handlers=[file_handler, console_handler],
    )


class HealthResponse(BaseModel):
    status: str = "ok"
    jar: str


router = APIRouter()


def _state(request: Request) -> LauncherState:
    return request.app.state.launcher_state


def _config(request: Request) -> Config:
    return request.app.state.config


def _read_config_file(config: Config) -> str | None:
    try:
        return config.config_path.read_text(errors="replace")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning(f"Cannot read {config.config_path}: {e}")
        return None


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Liveness of the server itself plus the current launcher status."""
    return HealthResponse(jar=_state(request).status_text)


@router.get("/logs", response_class=PlainTextResponse)
async def logs(request: Request):
    """Full log buffer, oldest first."""
    return "\n".join(_state(request).logs.lines())


@router.get("/config", response_class=PlainTextResponse)
async def config_file(request: Request):
    """Current on-disk config file."""
    text = _read_config_file(_config(request))
    return text if text is not None else NO_CONFIG_PLACEHOLDER


@router.get("/api/status")
async def status(request: Request):
    """Status, runtime and resource overview."""
    return get_current_metrics(_state(request), _config(request).work_dir)


@router.get("/", response_class=HTMLResponse)
@router.get("/{path:path}", response_class=HTMLResponse)
async def dashboard(request: Request, path: str = ""):
    """Render the dashboard."""
    if templates is None:
        return HTMLResponse("<h1>jarlauncher</h1><p>Dashboard templates not installed.</p>")

    state = _state(request)
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "metrics": get_current_metrics(state, _config(request).work_dir),
            "log_lines": state.logs.lines()[-DASHBOARD_LOG_LINES:],
            "config": _config(request),
            "version": __version__,
        },
    )


def create_app(
    config: Config = None,
    state: LauncherState = None,
    launcher: Launcher = None,
    start_launcher: bool = True,
) -> FastAPI:
    """Build the status server around a launcher state."""
    config = config or default_config
    state = state or LauncherState(config.log_buffer_size)
    if launcher is None and start_launcher:
        launcher = Launcher(config, state)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the launcher after the server is up; stop the child on shutdown."""
        logger.info(f"Status server listening on {config.host}:{config.port}")
        if launcher is not None:
            launcher.start()

        yield

        logger.info("Shutting down launcher...")
        if launcher is not None:
            await launcher.shutdown()

    app = FastAPI(
        title="jarlauncher",
        description="Java application launcher and supervisor",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.launcher_state = state
    app.state.launcher = launcher
    app.include_router(router)
    return app
