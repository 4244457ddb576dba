"""Restore of a downloaded snapshot into a target deployment."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import structlog

from models import RestoreReport, RestoreState, UnitResult, UnitStatus

from .errors import PerUnitRestoreError, ResetError, TransferError
from .naming import BackupUnit
from .storage import BlobStore
from .tools import LoadFn


logger = structlog.get_logger(__name__)

_DUMP_SUFFIXES = (".bson", ".bson.gz")
_METADATA_SUFFIXES = (".metadata.json", ".metadata.json.gz")


def _strip(filename: str, suffixes: tuple[str, ...]) -> str | None:
    for suffix in suffixes:
        if filename.endswith(suffix):
            return filename[: -len(suffix)]
    return None


def _units_in(files: list[Path]) -> dict[str, Path]:
    """Map collection names to the file ``mongorestore`` should load.

    A ``.bson`` dump wins; a collection with only a metadata file (a view)
    is loaded from that file.
    """

    dumps: dict[str, Path] = {}
    metadata: dict[str, Path] = {}
    for path in files:
        name = _strip(path.name, _DUMP_SUFFIXES)
        if name:
            dumps.setdefault(name, path)
            continue
        name = _strip(path.name, _METADATA_SUFFIXES)
        if name:
            metadata.setdefault(name, path)
    for name, path in metadata.items():
        dumps.setdefault(name, path)
    return dumps


def discover_units(root: Path) -> list[tuple[BackupUnit, Path]]:
    """Return ``(unit, input file)`` pairs found below a downloaded snapshot.

    Both layouts are understood: ``<db>/<coll>/<coll>.bson`` written per
    collection and ``<db>/<coll>.bson`` written by a whole-instance dump.
    Views have no ``.bson`` and are found through ``<coll>.metadata.json``.
    """

    found: list[tuple[BackupUnit, Path]] = []
    if not root.is_dir():
        return found
    for db_dir in sorted(path for path in root.iterdir() if path.is_dir()):
        units: dict[str, Path] = {}
        loose: list[Path] = []
        for entry in sorted(db_dir.iterdir()):
            if entry.is_dir():
                own = _units_in(sorted(entry.iterdir()))
                if entry.name in own:
                    units[entry.name] = own[entry.name]
            elif entry.is_file():
                loose.append(entry)
        for name, path in _units_in(loose).items():
            units.setdefault(name, path)
        found.extend((BackupUnit(db_dir.name, name), units[name]) for name in sorted(units))
    return found


class RestoreDriver:
    """Download, reset and reload one snapshot.

    The target is only reset once the download has completed; a failed
    download aborts the run with the target untouched. Units are then loaded
    independently and each outcome is recorded.
    """

    def __init__(
        self,
        store: BlobStore,
        reset: Callable[[], list[str]],
        load: LoadFn,
        scratch_dir: Path,
    ) -> None:
        self._store = store
        self._reset = reset
        self._load = load
        self._scratch = Path(scratch_dir)
        self.state = RestoreState.idle

    def _enter(self, state: RestoreState, report: RestoreReport) -> None:
        logger.info("restore_state", previous=self.state.value, state=state.value)
        self.state = state
        report.state = state

    def restore(self, snapshot_prefix: str, report: RestoreReport) -> RestoreReport:
        """Run the restore of blobs under ``snapshot_prefix`` and fill ``report``.

        Raises :class:`TransferError` if the download fails or holds no
        loadable unit, and :class:`ResetError` if dropping existing
        collections fails. The target is untouched in both transfer cases.
        """

        local = self._scratch / "restore"
        self._enter(RestoreState.downloading, report)
        try:
            self._store.download_tree(snapshot_prefix, local)
        except TransferError as exc:
            self._enter(RestoreState.aborted, report)
            report.error = str(exc)
            raise

        units = discover_units(local)
        logger.info("restore_units_found", count=len(units))
        if not units:
            self._enter(RestoreState.aborted, report)
            report.error = f"snapshot_has_no_units: {snapshot_prefix}"
            raise TransferError(report.error)

        self._enter(RestoreState.dropping, report)
        try:
            report.dropped = self._reset()
        except ResetError as exc:
            self._enter(RestoreState.aborted, report)
            report.error = str(exc)
            raise

        self._enter(RestoreState.loading, report)
        for unit, path in units:
            report.units.append(self._load_unit(unit, path))

        self._enter(RestoreState.done, report)
        return report

    def _load_unit(self, unit: BackupUnit, path: Path) -> UnitResult:
        outcome = self._load(unit, path)
        if outcome.ok:
            logger.info("unit_restored", unit=unit.label)
            return UnitResult(
                database=unit.database,
                collection=unit.collection,
                status=UnitStatus.succeeded,
                attempts=1,
            )
        error = PerUnitRestoreError(f"mongorestore_failed: {unit.label}: {outcome.diagnostic}")
        logger.error("unit_restore_failed", unit=unit.label, error=str(error))
        return UnitResult(
            database=unit.database,
            collection=unit.collection,
            status=UnitStatus.failed,
            attempts=1,
            error=str(error),
        )
