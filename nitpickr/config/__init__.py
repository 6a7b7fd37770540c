"""Configuration for the Nitpickr service."""

from nitpickr.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
