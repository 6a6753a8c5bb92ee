"""
Configuration management for tripstore.

Configuration is loaded from environment variables with the TRIPSTORE_
prefix using pydantic-settings; every setting has a default suitable for
local development.

Invariants:
    - The app and its widget must point at the same data_dir
    - widget_author must match the author the widget writes with

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Renaming a file setting orphans existing data; migrate instead
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """tripstore configuration loaded from environment."""

    # Storage
    data_dir: Path = Field(
        default=Path.home() / ".tripstore",
        description="Directory holding the document, history and preferences",
    )
    store_name: str = Field(default="trips_v1", description="Logical document store name")
    document_file: str = Field(default="trips_data", description="Document file name")
    history_file: str = Field(default="trips_history.jsonl", description="Transaction log file name")
    preferences_file: str = Field(default="preferences.json", description="Preference store file name")

    # Change feed
    widget_author: str = Field(default="widget", description="Author tag of widget writes")

    # Observability
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING or ERROR")
    log_format: str = Field(default="json", description="json or text")

    model_config = SettingsConfigDict(env_prefix="TRIPSTORE_")

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "text"):
            raise ValueError(f"Invalid log_format '{value}'. Must be one of: json, text")
        return value

    @field_validator("document_file", "history_file", "preferences_file")
    @classmethod
    def _check_file_name(cls, value: str) -> str:
        if not value or "/" in value:
            raise ValueError(f"File setting must be a plain file name, got {value!r}")
        return value

    @property
    def document_path(self) -> Path:
        return self.data_dir / self.document_file

    @property
    def history_path(self) -> Path:
        return self.data_dir / self.history_file

    @property
    def preferences_path(self) -> Path:
        return self.data_dir / self.preferences_file

    def log_config(self) -> None:
        """Log the loaded configuration."""
        logger.info(
            "tripstore configuration loaded",
            extra={
                "data_dir": str(self.data_dir),
                "store_name": self.store_name,
                "document_file": self.document_file,
                "history_file": self.history_file,
                "preferences_file": self.preferences_file,
                "widget_author": self.widget_author,
                "log_level": self.log_level,
            },
        )
