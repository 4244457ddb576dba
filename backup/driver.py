"""Per-unit backup: dump, upload, retry."""

from __future__ import annotations

import shutil
import tempfile
import time
from pathlib import Path
from typing import Callable

import structlog

from models import UnitResult, UnitStatus

from .errors import EnumerationError, RetriesExhausted, TransferError, UnitDumpError
from .naming import BackupUnit, split_container
from .retry import RetryPolicy
from .storage import BlobStore
from .tools import DumpFn


logger = structlog.get_logger(__name__)


class UnitBackupDriver:
    """Backs up one unit at a time into a fresh scratch directory.

    A failed dump or a failed upload both restart the unit from the dump; the
    local artifact is removed after every attempt.
    """

    def __init__(
        self,
        dump: DumpFn,
        store: BlobStore,
        scratch_dir: Path,
        *,
        policy: RetryPolicy | None = None,
        exists: Callable[[BackupUnit], bool] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._dump = dump
        self._store = store
        self._scratch = Path(scratch_dir)
        self._policy = policy or RetryPolicy()
        self._exists = exists
        self._sleep = sleep

    def backup(self, unit: BackupUnit, remote_path: str) -> UnitResult:
        """Back up ``unit`` to ``remote_path`` (container included).

        Raises :class:`RetriesExhausted` once the policy stops allowing attempts.
        """

        _, prefix = split_container(remote_path)
        attempt = 0
        last_error: Exception | None = None
        while True:
            attempt += 1
            if not self._policy.allows(attempt):
                raise RetriesExhausted(unit.label, attempt - 1, last_error)

            if self._vanished(unit, attempt):
                return _result(unit, UnitStatus.skipped, attempt, remote_path)

            try:
                uploaded = self._attempt(unit, prefix)
            except (UnitDumpError, TransferError) as exc:
                last_error = exc
                wait = self._policy.delay(attempt)
                logger.warning(
                    "unit_attempt_failed",
                    unit=unit.label,
                    attempt=attempt,
                    error=str(exc),
                    retry_in=wait,
                )
                if self._policy.allows(attempt + 1):
                    self._sleep(wait)
                continue

            if not uploaded:
                logger.warning("unit_dump_empty", unit=unit.label, attempt=attempt)
                return _result(unit, UnitStatus.skipped, attempt, remote_path)

            logger.info("unit_backed_up", unit=unit.label, attempt=attempt, remote_path=remote_path)
            return _result(unit, UnitStatus.succeeded, attempt, remote_path)

    def _vanished(self, unit: BackupUnit, attempt: int) -> bool:
        if self._exists is None:
            return False
        try:
            present = self._exists(unit)
        except EnumerationError as exc:
            # unknown; let the dump attempt decide
            logger.warning("unit_check_failed", unit=unit.label, attempt=attempt, error=str(exc))
            return False
        if not present:
            logger.warning("unit_vanished", unit=unit.label, attempt=attempt)
        return not present

    def _attempt(self, unit: BackupUnit, prefix: str) -> bool:
        self._scratch.mkdir(parents=True, exist_ok=True)
        artifact = Path(tempfile.mkdtemp(prefix="dump-", dir=self._scratch))
        try:
            logger.info("unit_dump_start", unit=unit.label)
            outcome = self._dump(unit, artifact)
            if not outcome.ok:
                raise UnitDumpError(f"mongodump_failed: {unit.label}: {outcome.diagnostic}")
            source = _upload_source(artifact, unit)
            if not _has_files(source):
                # collection dropped between the check and the dump
                return False
            self._store.upload_tree(source, prefix)
            return True
        finally:
            shutil.rmtree(artifact, ignore_errors=True)


def _upload_source(artifact: Path, unit: BackupUnit) -> Path:
    # mongodump --out=<dir> --db=<db> writes into <dir>/<db>/
    if unit.is_instance:
        return artifact
    return artifact / unit.database


def _has_files(path: Path) -> bool:
    return path.is_dir() and any(entry.is_file() for entry in path.rglob("*"))


def _result(unit: BackupUnit, status: UnitStatus, attempts: int, remote_path: str) -> UnitResult:
    return UnitResult(
        database=unit.database,
        collection=unit.collection,
        status=status,
        attempts=attempts,
        remote_path=remote_path,
    )
