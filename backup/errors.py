"""Exception hierarchy for backup and restore runs."""

from __future__ import annotations


class BackupError(RuntimeError):
    """Raised when backup or restore operations cannot be completed."""


class ConfigurationError(BackupError):
    """Required parameters are missing or malformed."""


class EnumerationError(BackupError):
    """The source deployment could not be inventoried."""


class UnitDumpError(BackupError):
    """The dump tool failed for one unit."""


class TransferError(BackupError):
    """A blob storage transfer, listing or deletion failed."""


class ResetError(BackupError):
    """Dropping existing collections on the restore target failed."""


class SnapshotCollisionError(BackupError):
    """Another run already wrote to the snapshot root being claimed."""


class PerUnitRestoreError(BackupError):
    """A single unit could not be loaded during restore."""


class RetriesExhausted(BackupError):
    """The retry policy gave up on a unit."""

    def __init__(self, label: str, attempts: int, last_error: BaseException | None = None) -> None:
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"{label} gave up after {attempts} attempts{detail}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
