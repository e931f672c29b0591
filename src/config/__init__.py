"""
Configuration loader.

App config: reads config.yaml, validates against a JSON Schema, resolves
env var overrides.
"""

from config.loader import (
    AlertingConfig,
    AppConfig,
    ConfigError,
    DataConfig,
    LeaderboardConfig,
    load_config,
)

__all__ = [
    "AlertingConfig",
    "AppConfig",
    "ConfigError",
    "DataConfig",
    "LeaderboardConfig",
    "load_config",
]
