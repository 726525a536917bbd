"""
Run configuration.
"""

from .settings import ConfigError, SwcSettings, DEFAULT_SETTINGS, ENV_PREFIX, load_settings

__all__ = [
    "ConfigError",
    "SwcSettings",
    "DEFAULT_SETTINGS",
    "ENV_PREFIX",
    "load_settings",
]
