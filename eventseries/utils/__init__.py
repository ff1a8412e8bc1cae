"""Utility modules for eventseries."""

from .logging import VERBOSE, get_log_level, get_logger, setup_logging, setup_logging_from_settings

__all__ = ["VERBOSE", "get_log_level", "get_logger", "setup_logging", "setup_logging_from_settings"]
