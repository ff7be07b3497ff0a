"""Server runner with uvicorn."""

import logging
from typing import Any

import uvicorn
from fastapi import FastAPI

from lessonforge.server.config import ServerConfig

logger = logging.getLogger(__name__)


def run_server(
    app: FastAPI | str, config: ServerConfig | None = None, **uvicorn_kwargs: Any
) -> None:
    """Run the API with uvicorn.

    Args:
        app: FastAPI application instance or import string
        config: Server configuration (loads from env vars if None)
        **uvicorn_kwargs: Overrides passed straight to uvicorn.run()
    """
    if config is None:
        config = ServerConfig()

    uvicorn_config: dict[str, Any] = {
        "host": config.host,
        "port": config.port,
        "reload": config.reload,
        "log_level": config.log_level,
        "access_log": config.access_log,
    }
    uvicorn_config.update(uvicorn_kwargs)

    logger.info("Starting uvicorn on %s:%d", uvicorn_config["host"], uvicorn_config["port"])
    uvicorn.run(app, **uvicorn_config)
