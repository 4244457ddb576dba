"""Pydantic models describing backup and restore run outcomes."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class BackupOperation(StrEnum):
    backup = "backup"
    restore = "restore"
    list = "list"


class UnitMode(StrEnum):
    """Granularity of a backup run.

    ``instance`` dumps the whole deployment as one unit and is kept only for
    compatibility with snapshots written by older tooling.
    """

    collection = "collection"
    instance = "instance"


class UnitStatus(StrEnum):
    succeeded = "succeeded"
    skipped = "skipped"
    failed = "failed"


class RestoreState(StrEnum):
    """Lifecycle of a restore run; ``aborted`` leaves the target untouched."""

    idle = "idle"
    downloading = "downloading"
    dropping = "dropping"
    loading = "loading"
    done = "done"
    aborted = "aborted"


class RunStatus(StrEnum):
    completed = "completed"
    partial = "partial"
    failed = "failed"


class UnitResult(BaseModel):
    """Outcome of backing up or restoring a single unit."""

    database: str | None = None
    collection: str | None = None
    status: UnitStatus
    attempts: int = 0
    remote_path: str | None = Field(default=None, alias="remotePath")
    error: str | None = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def label(self) -> str:
        if self.database is None:
            return "<instance>"
        if self.collection is None:
            return self.database
        return f"{self.database}.{self.collection}"


class _RunReport(BaseModel):
    server: str
    timestamp: str
    units: list[UnitResult] = Field(default_factory=list)
    error: str | None = None

    model_config = ConfigDict(populate_by_name=True)

    def count(self, status: UnitStatus) -> int:
        return sum(1 for unit in self.units if unit.status is status)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> RunStatus:
        if self.error is not None:
            return RunStatus.failed
        failed = self.count(UnitStatus.failed)
        if not failed:
            return RunStatus.completed
        if failed == len(self.units):
            return RunStatus.failed
        return RunStatus.partial


class BackupReport(_RunReport):
    """Summary of a backup run."""

    remote_root: str = Field(alias="remoteRoot")
    swept: int | None = None


class RestoreReport(_RunReport):
    """Summary of a restore run, with one entry per restored unit."""

    remote_root: str = Field(alias="remoteRoot")
    state: RestoreState = RestoreState.idle
    dropped: list[str] = Field(default_factory=list)
