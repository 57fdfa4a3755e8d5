"""folio configuration via environment / .env file."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FOLIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Trust boundary ---
    PLUGIN_BASE_DIR: str = "."

    # --- Failure policy ---
    PLUGIN_STRICT: bool = False
    PLUGIN_SECURITY_FATAL: bool = False

    # --- Resolution ---
    PLUGIN_CACHE: bool = True
    PLUGIN_MAX_WORKERS: int = 4
    PLUGIN_ENTRY_POINT_GROUP: str = "folio.plugins"

    # --- Logging ---
    PLUGIN_VERBOSE: bool = False

    @field_validator("PLUGIN_BASE_DIR", mode="before")
    @classmethod
    def _expand_base_dir(cls, v: str) -> str:
        return str(Path(str(v)).expanduser())

    @field_validator("PLUGIN_MAX_WORKERS")
    @classmethod
    def _bound_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"PLUGIN_MAX_WORKERS must be at least 1, got {v}")
        return min(v, 32)


settings = Settings()
