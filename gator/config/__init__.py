"""Settings and the per-user config file."""

from .settings import Settings, settings
from .user_config import GatorConfig, ConfigError, read_config, write_config, set_user

__all__ = [
    "Settings", "settings",
    "GatorConfig", "ConfigError", "read_config", "write_config", "set_user",
]
