"""Logging setup for the CLI and API entry points."""
import logging
from typing import Optional

from .settings import ReviewpoolConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(config: ReviewpoolConfig, level: Optional[str] = None) -> None:
    """Configure root logging from the config's level and optional log file."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=getattr(logging, (level or config.log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
