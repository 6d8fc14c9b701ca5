"""Application configuration."""

from edutrack.config.settings import Settings, get_settings


__all__ = ["Settings", "get_settings"]
