"""HTTP API for lessons."""

from lessonforge.server.app import create_app
from lessonforge.server.config import ServerConfig
from lessonforge.server.run import run_server

__all__ = ["ServerConfig", "create_app", "run_server"]
