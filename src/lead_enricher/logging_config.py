"""Logging configuration for the application."""

import logging
from typing import Dict, Optional
from rich.logging import RichHandler
from .config import settings


def setup_logging(level: Optional[str] = None) -> None:
    """Set up application logging with rich formatting."""

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper()),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=None,  # Use default console
                show_path=False,
                markup=False,
                rich_tracebacks=True,
            )
        ],
        force=True,
    )

    # Set specific logger levels
    logger_levels: Dict[str, str] = {
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "hpack": "WARNING",
    }

    for logger_name, level_name in logger_levels.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, level_name))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)
