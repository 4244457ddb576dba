"""Backups of MongoDB deployments to Azure Blob Storage."""

from .errors import (
    BackupError,
    ConfigurationError,
    EnumerationError,
    PerUnitRestoreError,
    ResetError,
    RetriesExhausted,
    SnapshotCollisionError,
    TransferError,
    UnitDumpError,
)
from .naming import INSTANCE_UNIT, BackupUnit, SnapshotId, snapshot_root, unit_path
from .retry import RetryPolicy
from .service import BackupOrchestrator, scratch_space

__all__ = [
    "BackupError",
    "BackupOrchestrator",
    "BackupUnit",
    "ConfigurationError",
    "EnumerationError",
    "INSTANCE_UNIT",
    "PerUnitRestoreError",
    "ResetError",
    "RetriesExhausted",
    "RetryPolicy",
    "SnapshotCollisionError",
    "SnapshotId",
    "TransferError",
    "UnitDumpError",
    "scratch_space",
    "snapshot_root",
    "unit_path",
]
