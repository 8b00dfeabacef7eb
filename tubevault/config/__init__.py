"""Configuration management module."""

from .settings import settings, Settings, Environment, LogLevel, Quality
from .logging_config import setup_logging, get_logger

__all__ = ["settings", "Settings", "Environment", "LogLevel", "Quality", "setup_logging", "get_logger"]
