"""
Settings for the reminders engine.

Values come from REMINDERS_* environment variables or a local .env file.
Components take explicit constructor arguments and only fall back to
these settings for defaults.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REMINDERS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Reminders Engine"
    log_level: str = "INFO"
    data_dir: Path = DEFAULT_DATA_DIR
    business_name: str = "Reminders Demo"
    timezone: str = "UTC"
    template_timeout_seconds: float = Field(default=30.0, gt=0)
    # None keeps cancelled reminders until the user deletes them
    cancelled_retention_days: Optional[int] = Field(default=None, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
