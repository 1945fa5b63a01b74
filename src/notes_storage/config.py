"""Configuration module for notes storage."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notes_storage.exceptions import ConfigurationError

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, shared by every checkout
_USER_ENV = Path.home() / ".notes_storage" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


class StorageConfig(BaseModel):
    """Configuration for notes storage."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTES_STORAGE_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTES_STORAGE_DATABASE_PATH", "data/db/notes.db")
        )
    )
    # Seconds SQLite waits on a locked database before failing
    sqlite_timeout: float = Field(
        default_factory=lambda: float(os.getenv("NOTES_STORAGE_SQLITE_TIMEOUT", "30"))
    )
    # Worker threads used to run callback-style operations
    worker_count: int = Field(
        default_factory=lambda: int(os.getenv("NOTES_STORAGE_WORKER_COUNT", "4"))
    )
    # How often an async subscriber wakes up to check for cancellation
    poll_interval: float = Field(
        default_factory=lambda: float(os.getenv("NOTES_STORAGE_POLL_INTERVAL", "0.1"))
    )
    # Pending events per subscriber before a backlog warning is logged
    backlog_warning_threshold: int = Field(
        default_factory=lambda: int(
            os.getenv("NOTES_STORAGE_BACKLOG_WARNING", "1000")
        )
    )
    # Logging configuration
    log_level: str = Field(
        default_factory=lambda: os.getenv("NOTES_STORAGE_LOG_LEVEL", "INFO").upper()
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTES_STORAGE_LOG_DIR"))
            if os.getenv("NOTES_STORAGE_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate_limits(self) -> "StorageConfig":
        """Reject values that would stall or disable the storage layer."""
        if self.worker_count < 1:
            raise ConfigurationError(
                "worker_count must be >= 1", config_key="worker_count"
            )
        if self.sqlite_timeout <= 0:
            raise ConfigurationError(
                "sqlite_timeout must be positive", config_key="sqlite_timeout"
            )
        if self.poll_interval <= 0:
            raise ConfigurationError(
                "poll_interval must be positive", config_key="poll_interval"
            )
        if self.backlog_warning_threshold < 1:
            raise ConfigurationError(
                "backlog_warning_threshold must be >= 1",
                config_key="backlog_warning_threshold",
            )
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning("Unknown log level %r, falling back to INFO", self.log_level)
            self.log_level = "INFO"
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = StorageConfig()
