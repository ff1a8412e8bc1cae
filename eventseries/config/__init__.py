"""Configuration package for eventseries."""

from .settings import EventSeriesSettings, get_settings, reset_settings

__all__ = ["EventSeriesSettings", "get_settings", "reset_settings"]
