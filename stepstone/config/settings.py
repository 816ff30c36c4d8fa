"""
stepstone/config/settings.py — Runtime knobs for a stepstone run.

Uses pydantic-settings to load, validate, and type-check the timeouts and
toggles that are not part of a role's own config file.

Two usage modes:
  CLI / scripts:
      cfg = load_settings()              # reads from .env + os.environ
      cfg = load_settings("ops/ci.env")  # override env file path

  Tests (isolated, no env file and no os.environ bleed):
      cfg = Settings(CONNECT_TIMEOUT_SECONDS=1, PERF_CONCURRENCY=4)
      # All values come exclusively from kwargs → clean, reproducible.

Environment variables carry a STEPSTONE_ prefix
(STEPSTONE_CONNECT_TIMEOUT_SECONDS=5); field names do not.
"""
from __future__ import annotations

import os
import re
from typing import Optional

from pydantic import field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

ENV_PREFIX = "STEPSTONE_"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    # settings_customise_sources returns only init_settings so Settings() reads
    # purely from kwargs. load_settings() is the explicit entry point that
    # merges the env file with os.environ and passes the result in.
    model_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings,)

    # -------------------------------------------------------------------------
    # Timeouts (seconds)
    # -------------------------------------------------------------------------
    CONNECT_TIMEOUT_SECONDS: float = 10.0
    OPERATION_TIMEOUT_SECONDS: float = 30.0
    PERF_TIMEOUT_SECONDS: float = 60.0

    # -------------------------------------------------------------------------
    # Object storage
    # -------------------------------------------------------------------------
    PROBE_PERMISSIONS: bool = True
    PERF_CONCURRENCY: int = 10

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    LOG_LEVEL: str = "WARNING"
    LOG_FILE: Optional[str] = None

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------

    @field_validator(
        "CONNECT_TIMEOUT_SECONDS",
        "OPERATION_TIMEOUT_SECONDS",
        "PERF_TIMEOUT_SECONDS",
    )
    @classmethod
    def positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0 seconds")
        return v

    @field_validator("PERF_CONCURRENCY")
    @classmethod
    def concurrency_in_range(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError("PERF_CONCURRENCY must be between 1 and 100")
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalise_log_level(cls, v: str) -> str:
        level = str(v).strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got '{v}'")
        return level


def load_settings(env_file: str = ".env") -> Settings:
    """Load and validate settings from an env file + os.environ.

    Only STEPSTONE_-prefixed keys are considered; the prefix is stripped
    before the values are handed to Settings. os.environ takes precedence
    over env file values.

    Raises:
        ValidationError: if any value fails validation.
    """
    file_vals: dict[str, str] = {}
    try:
        with open(env_file, encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                k, _, v = line.partition("=")
                k = k.strip()
                # Strip inline comments: "10   # seconds" → "10"
                v = re.sub(r"\s+#.*$", "", v.strip())
                if k:
                    file_vals[k] = v
    except FileNotFoundError:
        pass
    merged = {**file_vals, **os.environ}  # os.environ wins
    known = {
        k[len(ENV_PREFIX):]: v
        for k, v in merged.items()
        if k.startswith(ENV_PREFIX) and k[len(ENV_PREFIX):] in Settings.model_fields
    }
    return Settings(**known)
