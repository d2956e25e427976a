"""Configuration loading and logging setup."""
from .settings import ReviewpoolConfig, get_config, init_config
from .logging_setup import configure_logging

__all__ = [
    "ReviewpoolConfig",
    "get_config",
    "init_config",
    "configure_logging",
]
