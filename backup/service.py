"""Backup and restore runs of a MongoDB deployment against Azure Blob Storage."""

from __future__ import annotations

import shutil
import signal
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

import structlog
from pydantic import SecretStr
from pymongo import MongoClient
from pymongo.errors import ConfigurationError as MongoConfigurationError

from models import BackupOperation, BackupReport, RestoreReport, UnitResult, UnitStatus
from settings import BackupSettings

from . import inventory
from .driver import UnitBackupDriver
from .errors import ConfigurationError, RetriesExhausted, SnapshotCollisionError
from .naming import (
    SnapshotId,
    server_prefix,
    snapshot_ids_from_blob_names,
    snapshot_root,
    split_container,
    unit_path,
)
from .restore import RestoreDriver
from .retention import sweep
from .retry import RetryPolicy
from .storage import BlobStore
from .tools import MongoTools


logger = structlog.get_logger(__name__)

_TERMINATING_SIGNALS = tuple(
    sig for sig in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGHUP", None)) if sig is not None
)


def _raise_exit(signum: int, _frame: object) -> None:
    raise SystemExit(128 + signum)


@contextmanager
def scratch_space(base_dir: Path | None = None, *, prefix: str = "mongobackup-") -> Iterator[Path]:
    """Yield a private scratch directory that is removed on every exit path.

    While the directory is held, SIGTERM and SIGHUP raise ``SystemExit`` so the
    removal also runs when the process is told to stop. Ctrl-C already
    surfaces as ``KeyboardInterrupt``.
    """

    if base_dir is not None:
        Path(base_dir).mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=base_dir))
    previous: dict[int, object] = {}
    for sig in _TERMINATING_SIGNALS:
        try:
            previous[sig] = signal.signal(sig, _raise_exit)
        except ValueError:  # pragma: no cover - not in the main thread
            continue
    try:
        yield path
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        shutil.rmtree(path, ignore_errors=True)
        logger.info("scratch_removed", path=str(path))


def retry_policy_from(config: BackupSettings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.retry_max_attempts,
        backoff_seconds=config.retry_backoff_seconds,
        backoff_multiplier=config.retry_backoff_multiplier,
        max_backoff_seconds=config.retry_max_backoff_seconds,
    )


def _secret(value: SecretStr | None) -> str | None:
    return value.get_secret_value() if value is not None else None


class BackupOrchestrator:
    """Sequences backup and restore runs for one configured server.

    Collaborators default to real clients built from ``config``; tests pass
    their own.
    """

    def __init__(
        self,
        config: BackupSettings,
        *,
        mongo_client: MongoClient | None = None,
        store: BlobStore | None = None,
        tools: MongoTools | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], SnapshotId] | None = None,
    ) -> None:
        self.config = config
        self._mongo = mongo_client
        self._store = store
        self._tools = tools
        self._sleep = sleep
        self._clock = clock

    def _require(self, operation: BackupOperation) -> None:
        missing = self.config.missing_for(operation)
        if missing:
            raise ConfigurationError(f"missing settings for {operation.value}: {', '.join(missing)}")

    @property
    def server(self) -> str:
        return self.config.server_name or ""

    @property
    def mongo(self) -> MongoClient:
        if self._mongo is None:
            try:
                self._mongo = inventory.create_client(_secret(self.config.mongo_uri))
            except (ValueError, MongoConfigurationError) as exc:
                raise ConfigurationError(f"invalid_mongo_uri: {exc}") from exc
        return self._mongo

    @property
    def store(self) -> BlobStore:
        if self._store is None:
            try:
                self._store = BlobStore.from_account(
                    self.config.storage_account,
                    self.config.container,
                    connection_string=_secret(self.config.storage_connection_string),
                    account_key=_secret(self.config.storage_account_key),
                )
            except ValueError as exc:
                raise ConfigurationError(f"invalid_storage_settings: {exc}") from exc
        return self._store

    @property
    def tools(self) -> MongoTools:
        if self._tools is None:
            self._tools = MongoTools(
                uri=_secret(self.config.mongo_uri),
                dump_binary=self.config.dump_binary,
                restore_binary=self.config.restore_binary,
                gzip=self.config.gzip,
                write_concern=self.config.restore_write_concern,
                timeout=self.config.command_timeout_seconds,
            )
        return self._tools

    def _new_snapshot(self) -> SnapshotId:
        if self._clock is not None:
            return self._clock()
        return SnapshotId.now(self.server)

    def run_backup(self) -> BackupReport:
        """Back up every unit, then expire old snapshots if nothing failed."""

        self._require(BackupOperation.backup)
        snapshot = self._new_snapshot()
        root = snapshot_root(self.config.container, snapshot)
        report = BackupReport(server=snapshot.server, timestamp=snapshot.timestamp, remote_root=root)
        logger.info("backup_started", server=snapshot.server, timestamp=snapshot.timestamp, mode=self.config.mode.value)

        self.store.ensure_container()
        _, root_prefix = split_container(root)
        if self.store.has_prefix(root_prefix):
            raise SnapshotCollisionError(f"snapshot_exists: {root}")

        with scratch_space(self.config.scratch_dir) as scratch:
            driver = UnitBackupDriver(
                self.tools.dump,
                self.store,
                scratch,
                policy=retry_policy_from(self.config),
                exists=lambda unit: inventory.collection_exists(self.mongo, unit),
                sleep=self._sleep,
            )
            units = inventory.iter_units(self.mongo, self.config.mode, self.config.excluded_databases)
            for unit in units:
                target = unit_path(self.config.container, snapshot, unit)
                try:
                    result = driver.backup(unit, target)
                except RetriesExhausted as exc:
                    logger.error("unit_backup_abandoned", unit=unit.label, attempts=exc.attempts, error=str(exc))
                    result = UnitResult(
                        database=unit.database,
                        collection=unit.collection,
                        status=UnitStatus.failed,
                        attempts=exc.attempts,
                        remote_path=target,
                        error=str(exc),
                    )
                report.units.append(result)

        if report.count(UnitStatus.failed):
            logger.warning("retention_sweep_skipped", failed=report.count(UnitStatus.failed))
        else:
            report.swept = sweep(self.store, snapshot.server, self.config.retention_days)

        logger.info(
            "backup_finished",
            status=report.status.value,
            units=len(report.units),
            skipped=report.count(UnitStatus.skipped),
            failed=report.count(UnitStatus.failed),
            remote_root=root,
        )
        return report

    def run_restore(self, timestamp: str) -> RestoreReport:
        """Restore the snapshot taken at ``timestamp`` over the configured target."""

        self._require(BackupOperation.restore)
        snapshot = SnapshotId.parse(self.server, timestamp)
        root = snapshot_root(self.config.container, snapshot)
        report = RestoreReport(server=snapshot.server, timestamp=snapshot.timestamp, remote_root=root)
        logger.info("restore_started", server=snapshot.server, timestamp=snapshot.timestamp)

        _, root_prefix = split_container(root)
        with scratch_space(self.config.scratch_dir, prefix="mongorestore-") as scratch:
            driver = RestoreDriver(
                self.store,
                lambda: inventory.drop_all_collections(self.mongo),
                self.tools.load,
                scratch,
            )
            driver.restore(root_prefix, report)

        logger.info(
            "restore_finished",
            status=report.status.value,
            succeeded=report.count(UnitStatus.succeeded),
            failed=report.count(UnitStatus.failed),
        )
        return report

    def list_snapshots(self) -> list[SnapshotId]:
        """Return the snapshots of the configured server found in storage."""

        self._require(BackupOperation.list)
        names = self.store.list_names(server_prefix(self.server))
        return snapshot_ids_from_blob_names(self.server, names)

    def close(self) -> None:
        if self._mongo is not None:
            self._mongo.close()
