"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (FEEDPAGER__PAGER__PAGE_SIZE=20)
  2. feedpager.yaml         (searched in cwd, then the platform config dir)
  3. Hardcoded defaults

The config file is optional — all fields have sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("feedpager")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "feed.db")


def _find_config_file() -> str | None:
    """Return the path of the first feedpager.yaml found, or None."""
    candidates = [
        Path("feedpager.yaml"),
        Path(platformdirs.user_config_dir("feedpager")) / "feedpager.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class PagerSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    page_size: int = Field(default=10, gt=0)
    debounce_ms: int = Field(default=200, ge=0)
    max_cached_pages: int = Field(default=10, gt=0)
    retry_attempts: int = Field(default=3, gt=0)  # Total attempts, including the first
    retry_backoff_ms: int = Field(default=500, ge=0)


class SourceSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["memory", "sqlite", "http"] = "memory"
    base_url: str = "http://localhost:8000"
    timeout_seconds: float = Field(default=10.0, gt=0)
    db_path: str = _DEFAULT_DB_PATH


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: FEEDPAGER__PAGER__PAGE_SIZE=20
        env_prefix="FEEDPAGER__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    pager: PagerSettings = PagerSettings()
    source: SourceSettings = SourceSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
