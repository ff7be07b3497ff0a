"""Logging setup for the CLI and server entry points."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int = "info") -> None:
    """Configure root logging once per process.

    Args:
        level: Level name ("debug", "info", ...) or numeric level
    """
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
