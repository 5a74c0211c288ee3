"""Run the launcher with its status server."""

import uvicorn

from jarlauncher.config import config
from jarlauncher.main import create_app, setup_logging

if __name__ == "__main__":
    setup_logging(config)
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
    )
