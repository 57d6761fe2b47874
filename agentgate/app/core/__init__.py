"""Core utilities for the agentgate application."""

from agentgate.app.core.config import Settings, settings
from agentgate.app.core.logging import get_logger, setup_logging

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
]
