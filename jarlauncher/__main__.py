"""
Entry point for running the launcher via `python -m jarlauncher`.

Starts the status server with uvicorn; the launcher runs inside it.
With --once the jar is run a single time in the foreground instead.
"""

import argparse
import sys

import uvicorn

from .config import config
from .launcher import Launcher
from .main import create_app, setup_logging
from .state import LauncherState


def main():
    """Run the launcher."""
    parser = argparse.ArgumentParser(prog="jarlauncher", description="Download, run and supervise a Java application")
    parser.add_argument("--once", action="store_true", help="Run the jar once in the foreground, without restarts or status server")
    parser.add_argument("--host", default=config.host, help="Status server host")
    parser.add_argument("--port", type=int, default=config.port, help="Status server port")
    args = parser.parse_args()

    setup_logging(config)

    if args.once:
        state = LauncherState(config.log_buffer_size)
        sys.exit(Launcher(config, state).run_once())

    config.host, config.port = args.host, args.port
    uvicorn.run(
        create_app(config),
        host=args.host,
        port=args.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
