"""Configuration management for the query session engine."""

from .api import APIConfig
from .settings import Settings

__all__ = ["Settings", "APIConfig"]
