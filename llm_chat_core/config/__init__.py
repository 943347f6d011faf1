"""Configuration module for the chat core."""

from .settings import ChatSettings, ConfigurationError

__all__ = ["ChatSettings", "ConfigurationError"]
