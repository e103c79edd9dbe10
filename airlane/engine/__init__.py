"""Airlane Engine — Errors, configuration, structured logging."""

from airlane.engine.errors import AirlaneError  # noqa: F401
from airlane.engine.config import PlatformConfig, get_platform_config  # noqa: F401

__all__ = [
    "AirlaneError",
    "PlatformConfig",
    "get_platform_config",
]
