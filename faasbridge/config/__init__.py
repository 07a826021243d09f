"""
faasbridge Configuration

Environment-driven settings, read once at process start.
"""

from .environment import get_settings, settings_from_env
from .schemas import RuntimeSettings

__all__ = [
    "RuntimeSettings",
    "get_settings",
    "settings_from_env",
]
