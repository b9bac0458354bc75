"""
Configuration management for PaceFlow.

Configuration is loaded from environment variables (optionally through a
``.env`` file) with fallbacks to sensible defaults.
"""

from functools import lru_cache
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from the current working directory
load_dotenv()


WORKER_MODES = ("process", "thread")
START_METHODS = ("spawn", "fork", "forkserver")
LOG_FORMATS = ("console", "json")


class Settings(BaseSettings):
    """PaceFlow settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PACEFLOW_",
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")
    log_file: Optional[str] = Field(default=None)

    # Codec worker
    worker_mode: str = Field(default="process")
    start_method: str = Field(default="spawn")
    shutdown_timeout: float = Field(default=5.0, gt=0)

    # Record preprocessing (meters)
    smoothing_distance: float = Field(default=30.0, gt=0)
    grade_distance: float = Field(default=100.0, gt=0)

    # Encoded output file names
    file_prefix: str = Field(default="paceflow")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, v: str) -> str:
        if v not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}")
        return v

    @field_validator("worker_mode")
    @classmethod
    def _check_worker_mode(cls, v: str) -> str:
        if v not in WORKER_MODES:
            raise ValueError(f"worker_mode must be one of {WORKER_MODES}")
        return v

    @field_validator("start_method")
    @classmethod
    def _check_start_method(cls, v: str) -> str:
        if v not in START_METHODS:
            raise ValueError(f"start_method must be one of {START_METHODS}")
        return v

    def preprocessor_options(self) -> Dict[str, Any]:
        """Keyword arguments for :class:`paceflow.processors.Preprocessor`."""
        return {
            "smoothing_distance": self.smoothing_distance,
            "grade_distance": self.grade_distance,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get process-wide settings."""
    return Settings()
