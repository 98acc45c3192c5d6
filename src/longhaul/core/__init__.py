"""Core infrastructure: configuration, logging, run store and rate limiting."""

from longhaul.core.backtrace import clean_backtrace
from longhaul.core.config import LonghaulSettings, load_settings
from longhaul.core.logging import configure_logging, get_logger

__all__ = [
    "LonghaulSettings",
    "clean_backtrace",
    "configure_logging",
    "get_logger",
    "load_settings",
]
