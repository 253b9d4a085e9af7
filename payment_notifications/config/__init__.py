"""Configuration package for payment notifications."""
from .settings import get_settings, Settings

__all__ = ["Settings", "get_settings"]
