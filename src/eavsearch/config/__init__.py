"""Configuration management."""

from eavsearch.config.settings import Settings

__all__ = ["Settings"]
