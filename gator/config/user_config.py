"""The per-user JSON config file (``~/.gatorconfig.json``)."""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel, ValidationError

from .settings import settings

logger = structlog.get_logger()


class ConfigError(Exception):
    """The config file exists but cannot be read."""


class GatorConfig(BaseModel):
    db_url: str = ""
    current_user_name: str = ""


def _resolve(path) -> Path:
    return Path(path) if path else Path(settings.config_file)


def read_config(path: Optional[str] = None) -> GatorConfig:
    """Load the config file. A missing file yields an empty config."""
    config_path = _resolve(path)
    if not config_path.exists():
        logger.debug("config_missing", path=str(config_path))
        return GatorConfig()

    try:
        with open(config_path) as f:
            data = json.load(f)
        return GatorConfig.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e


def write_config(config: GatorConfig, path: Optional[str] = None) -> None:
    """Save config atomically (write to temp, then rename)."""
    config_path = _resolve(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    # Write to temp file in same directory
    fd, temp_path = tempfile.mkstemp(dir=config_path.parent, suffix=".json")
    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(config.model_dump(), f, indent=2)
        os.chmod(temp_path, 0o600)
        # Atomic rename
        os.replace(temp_path, config_path)
        logger.debug("config_saved", path=str(config_path))
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def set_user(name: str, path: Optional[str] = None) -> GatorConfig:
    """Record ``name`` as the current user, keeping the rest of the file."""
    config = read_config(path)
    config.current_user_name = name
    write_config(config, path)
    return config
