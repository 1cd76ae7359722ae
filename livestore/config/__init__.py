"""Configuration module for the live object store."""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
