"""Application settings with environment variable support."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


# Compute base_dir at module level
_BASE_DIR = Path(__file__).parent.parent.parent.resolve()


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="GATOR_",  # GATOR_DATABASE_URL, GATOR_LOG_LEVEL, etc.
        extra="ignore",
    )

    # Paths - computed from base_dir
    base_dir: Path = _BASE_DIR
    data_dir: Path = _BASE_DIR / "data"

    # Database
    database_url: str = f"sqlite:///{_BASE_DIR / 'data' / 'gator.db'}"

    # Per-user config file holding the current user name
    config_file: Path = Path.home() / ".gatorconfig.json"

    # Fetching
    fetch_timeout_seconds: float = 5.0
    user_agent: str = "gator"

    # Polling
    poll_stop_on_error: bool = False
    browse_default_limit: int = 2

    # Logging
    log_level: str = "INFO"


settings = Settings()
