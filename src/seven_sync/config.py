"""Configuration management for seven-sync."""

import json
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from seven_sync.services.exceptions import FriendlyError

CONFIG_FILE_NAME = "7-sync.cfg"
CONFIG_FILE_SUFFIX = ".cfg"
LOG_FILE_SUFFIX = ".log"
PASSWORD_ENV_VAR = "SEVEN_SYNC_PASSWORD"


class SyncConfig(BaseSettings):
    """Settings of one backup, stored as JSON in a .cfg file.

    Relative source and destination paths are resolved against the directory
    of the configuration file. Environment variables with the SEVEN_SYNC_
    prefix supply values that are missing from the file.
    """

    source: Path = Field(description="Directory to back up")
    destination: Path = Field(description="Directory receiving the encrypted copy")
    password_hash: str = Field(default="", description="Salted scrypt hash of the password")
    seven_zip: str = Field(default="7z", description="7-Zip executable")
    index_save_interval: float = Field(
        default=60, ge=0, description="Seconds between intermediate saves of the database"
    )

    model_config = SettingsConfigDict(
        env_prefix="SEVEN_SYNC_",
        extra="ignore",
    )

    @field_validator("seven_zip")
    @classmethod
    def ensure_executable(cls, v: str) -> str:
        """Fall back to the default executable if the value is blank."""
        return v.strip() or "7z"

    def resolve(self, config_file: Path) -> "SyncConfig":
        """Return a copy with source and destination made absolute."""
        base = config_file.resolve().parent
        return self.model_copy(
            update={
                "source": (base / self.source).resolve(),
                "destination": (base / self.destination).resolve(),
            }
        )


def get_log_file(config_file: Path) -> Path:
    """The log file lives next to the configuration file: 7-sync.cfg -> 7-sync.log"""
    if config_file.suffix == CONFIG_FILE_SUFFIX:
        return config_file.with_suffix(LOG_FILE_SUFFIX)
    return config_file.with_name(config_file.name + LOG_FILE_SUFFIX)


def read_config(config_file: Path) -> SyncConfig:
    """Read the configuration file with source and destination as they were written."""
    message = validate_config_file(config_file, must_exist=True)
    if message:
        raise FriendlyError(message)
    try:
        data = json.loads(config_file.read_text(encoding="utf-8"))
        return SyncConfig(**data)
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to load {config_file}: {e}")
        raise FriendlyError(f"The configuration file {config_file} is invalid:\n{e}")


def load_config(config_file: Path) -> SyncConfig:
    """
    Load and validate the configuration file.

    Raises:
        FriendlyError: If the file is missing, malformed or points to invalid directories
    """
    config = read_config(config_file).resolve(config_file)
    message = validate_config(config, config_file)
    if message:
        raise FriendlyError(message)
    return config


def save_config(config: SyncConfig, config_file: Path) -> None:
    """Write the configuration as JSON (atomically via a temp file).

    Paths are written unchanged, so relative ones stay relative to the config file.
    """
    data = config.model_dump(mode="json")
    temp_path = config_file.with_suffix(".tmp")
    try:
        temp_path.write_text(json.dumps(data, indent=4) + "\n", encoding="utf-8")
        temp_path.replace(config_file)
        logger.info(f"Saved the configuration to {config_file}")
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        logger.error(f"Failed to save {config_file}: {e}")
        raise FriendlyError(f"Failed to save the configuration file {config_file} - {e}")


def validate_config_file(config_file: Path, must_exist: bool) -> Optional[str]:
    """Return an error message if the config file can't be used, None if it's fine."""
    if must_exist and not config_file.exists():
        return f'Config file "{config_file}" does not exist'
    if config_file.exists() and not config_file.is_file():
        return f'Config file "{config_file}" is not a regular file'
    if config_file.suffix != CONFIG_FILE_SUFFIX:
        return f"{config_file} does not end with {CONFIG_FILE_SUFFIX}"
    directory = config_file.resolve().parent
    if not directory.exists():
        return f"Directory {directory} does not exist"
    if not directory.is_dir():
        return f"{directory} is not a directory"
    return None


def validate_config(config: SyncConfig, config_file: Path) -> Optional[str]:
    """Check the source and destination directories (expects resolved paths)."""
    config_file = config_file.resolve()
    source = config.source
    destination = config.destination

    if not source.exists():
        return f"Source directory {source} does not exist"
    if not source.is_dir():
        return f"{source} is not a directory"
    if _is_parent_child(source, config_file):
        return "The source directory must not contain the configuration file"

    if not destination.exists():
        return f"Destination directory {destination} does not exist"
    if not destination.is_dir():
        return f"{destination} is not a directory"
    if source.resolve() == destination.resolve():
        return "The destination directory can't be the same as the source directory"
    if _is_parent_child(destination, config_file):
        return "The destination directory must not contain the configuration file"
    if _is_parent_child(destination, source):
        return "The source directory must not be inside the destination directory"
    if _is_parent_child(source, destination):
        return "The destination directory must not be inside the source directory"
    return None


def _is_parent_child(parent: Path, child: Path) -> bool:
    parent = parent.resolve()
    child = child.resolve()
    return parent != child and parent in child.parents
