"""Configuration module for the bookkeeping core."""

from simple_bookkeeping.config.logging import configure_logging, get_logger
from simple_bookkeeping.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging", "get_logger"]
