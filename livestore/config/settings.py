"""
Live Object Store Configuration Settings

This module contains all configuration constants for the object store server.
Every value can be overridden from the environment; the CLI flags in
``livestore.server`` take precedence over both.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Server configuration settings."""

    # HTTP / WebSocket gateway
    HOST: str = os.environ.get("LIVESTORE_HOST", "0.0.0.0")
    PORT: int = int(os.environ.get("LIVESTORE_PORT", "3000"))

    # JSON-lines TCP transport
    TCP_PORT: int = int(os.environ.get("LIVESTORE_TCP_PORT", "7171"))
    MAX_MESSAGE_BYTES: int = 1_000_000

    # Persistence root, one <key>.json record per key
    CACHE_DIR: str = os.environ.get("CACHE_DIR", ".cache")
    RECORD_SUFFIX: str = ".json"

    # Logging settings
    DEBUG: bool = os.environ.get("LIVESTORE_DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.environ.get("LIVESTORE_LOG_LEVEL", "INFO")


# Global settings instance
settings = Settings()
