"""
Vault configuration.

Reads settings from the environment (and an optional ``.env`` file):
    CACHE_VAULT_DATABASE_URL   PostgreSQL DSN (falls back to DATABASE_URL);
                               takes precedence over the local file
    CACHE_VAULT_DATABASE_PATH  Local SQLite file; defaults to
                               <user config dir>/cache-vault/cache-vault.db
    CACHE_VAULT_SERVICE        Credential store service name
    CACHE_VAULT_POOL_MIN_SIZE  Connection pool minimum size
    CACHE_VAULT_POOL_MAX_SIZE  Connection pool maximum size

Key material itself never passes through configuration; only the
credential store identity does.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError
from .keys import DEFAULT_SERVICE, ENCRYPTION_KEY_PURPOSE, PEPPER_PURPOSE

DATABASE_FILENAME = "cache-vault.db"


def user_config_dir() -> Path:
    """Per-user configuration directory of the current platform."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        return Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support"
    xdg = os.environ.get("XDG_CONFIG_HOME")
    return Path(xdg) if xdg else Path.home() / ".config"


def default_database_path() -> str:
    """Local database file used when no other storage is configured."""
    return str(user_config_dir() / DEFAULT_SERVICE / DATABASE_FILENAME)


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    database_url: Optional[str] = None
    database_path: str = Field(default_factory=default_database_path, min_length=1)
    service: str = Field(default=DEFAULT_SERVICE, min_length=1)
    encryption_key_purpose: str = Field(default=ENCRYPTION_KEY_PURPOSE, min_length=1)
    pepper_purpose: str = Field(default=PEPPER_PURPOSE, min_length=1)
    pool_min_size: int = Field(default=1, ge=1)
    pool_max_size: int = Field(default=10, ge=1)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty DSN as unset."""
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_purposes(self) -> "VaultConfig":
        """Keep key and pepper apart and the pool bounds ordered."""
        if self.encryption_key_purpose == self.pepper_purpose:
            raise ValueError("encryption_key_purpose and pepper_purpose must differ")
        if self.pool_max_size < self.pool_min_size:
            raise ValueError(
                f"pool_max_size ({self.pool_max_size}) is smaller than "
                f"pool_min_size ({self.pool_min_size})"
            )
        return self

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "VaultConfig":
        """
        Create VaultConfig from environment variables.

        Args:
            env_file: Optional ``.env`` path; variables already set in the
                environment take precedence

        Returns:
            Populated VaultConfig instance

        Raises:
            ConfigError: If a value is missing its expected type or
                fails validation
        """
        load_dotenv(env_file)
        values = {
            "database_url": os.environ.get("CACHE_VAULT_DATABASE_URL")
            or os.environ.get("DATABASE_URL"),
        }
        if os.environ.get("CACHE_VAULT_DATABASE_PATH"):
            values["database_path"] = os.environ["CACHE_VAULT_DATABASE_PATH"]
        optional = {
            "service": "CACHE_VAULT_SERVICE",
            "pool_min_size": "CACHE_VAULT_POOL_MIN_SIZE",
            "pool_max_size": "CACHE_VAULT_POOL_MAX_SIZE",
        }
        for field, env_name in optional.items():
            if env_name in os.environ:
                values[field] = os.environ[env_name]
        return cls.create(**values)

    @classmethod
    def create(cls, **values) -> "VaultConfig":
        """Validate values, raising ConfigError instead of ValidationError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigError(f"Invalid vault configuration: {e}") from e
