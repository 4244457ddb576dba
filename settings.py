"""Application settings models."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import ConfigDict, Field, SecretStr
from pydantic_settings import BaseSettings

from models import BackupOperation, UnitMode


DEFAULT_CONTAINER = "mongodbbackup"


class BackupSettings(BaseSettings):
    """Settings for backup and restore runs.

    Environment variables follow the ``BACKUP_`` prefix. For example,
    ``BACKUP_MONGO_URI`` and ``BACKUP_STORAGE_ACCOUNT`` configure the source
    deployment and the target storage account. Command line flags override
    any value read from the environment or ``.env``.
    """

    mongo_uri: SecretStr | None = None
    storage_account: str | None = None
    storage_connection_string: SecretStr | None = None
    storage_account_key: SecretStr | None = None
    container: str = DEFAULT_CONTAINER
    server_name: str | None = None

    mode: UnitMode = UnitMode.collection
    excluded_databases: list[str] = Field(default_factory=lambda: ["local", "config"])
    scratch_dir: Path | None = None
    gzip: bool = False

    dump_binary: str = "mongodump"
    restore_binary: str = "mongorestore"
    command_timeout_seconds: float | None = None
    restore_write_concern: str = "{w:0}"

    retention_days: int = Field(default=7, ge=1)
    retry_max_attempts: int | None = Field(default=None, ge=1)
    retry_backoff_seconds: float = Field(default=10.0, ge=0)
    retry_backoff_multiplier: float = Field(default=1.0, ge=1.0)
    retry_max_backoff_seconds: float | None = None

    log_level: str = "INFO"
    log_format: str = "json"

    model_config = ConfigDict(
        env_prefix="BACKUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def missing_for(self, operation: BackupOperation) -> list[str]:
        """Return names of required settings absent for ``operation``."""

        missing: list[str] = []
        needs_mongo = operation is not BackupOperation.list
        if needs_mongo and (self.mongo_uri is None or not self.mongo_uri.get_secret_value()):
            missing.append("mongo_uri")
        if not self.storage_account and self.storage_connection_string is None:
            missing.append("storage_account")
        if not self.server_name:
            missing.append("server_name")
        return missing


@lru_cache(maxsize=1)
def get_settings() -> BackupSettings:
    """Return cached backup settings."""

    return BackupSettings()
