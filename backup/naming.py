"""Remote layout of snapshots inside the blob container.

A snapshot written for server ``srv1`` at ``2024-01-02-03-04-05`` lives under::

    <container>/srv1/srv1_2024-01-02-03-04-05/<database>/<collection>/...

Everything here is pure; storage access lives in :mod:`backup.storage`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from .errors import ConfigurationError


TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"


@dataclass(slots=True, frozen=True)
class BackupUnit:
    """One dumpable unit: a collection, or the whole instance when both are ``None``."""

    database: str | None = None
    collection: str | None = None

    @property
    def is_instance(self) -> bool:
        return self.database is None

    @property
    def label(self) -> str:
        if self.is_instance:
            return "<instance>"
        return f"{self.database}.{self.collection}"


INSTANCE_UNIT = BackupUnit()


@dataclass(slots=True, frozen=True)
class SnapshotId:
    """Identifies one backup run of one server."""

    server: str
    timestamp: str

    @classmethod
    def now(cls, server: str, *, now: datetime | None = None) -> "SnapshotId":
        current = now or datetime.now(timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return cls(server, current.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT))

    @classmethod
    def parse(cls, server: str, timestamp: str) -> "SnapshotId":
        candidate = (timestamp or "").strip()
        try:
            datetime.strptime(candidate, TIMESTAMP_FORMAT)
        except ValueError as exc:
            raise ConfigurationError(
                f"invalid snapshot timestamp {timestamp!r}, expected YYYY-MM-DD-HH-MM-SS"
            ) from exc
        return cls(server, candidate)

    @property
    def folder(self) -> str:
        return f"{self.server}/{self.server}_{self.timestamp}"


def normalize_segment(value: str) -> str:
    """Return ``value`` without surrounding whitespace and slashes."""

    return (value or "").strip().strip("/")


def snapshot_root(container: str, snapshot: SnapshotId) -> str:
    """Return the top-level folder of ``snapshot``."""

    return f"{normalize_segment(container)}/{snapshot.folder}"


def unit_path(container: str, snapshot: SnapshotId, unit: BackupUnit) -> str:
    """Return the remote folder holding ``unit`` for ``snapshot``.

    The whole-instance unit is written directly below the snapshot root.
    """

    root = snapshot_root(container, snapshot)
    if unit.is_instance:
        return root
    return f"{root}/{unit.database}/{unit.collection}"


def split_container(path: str) -> tuple[str, str]:
    """Split a remote path into ``(container, blob_prefix)``."""

    container, _, prefix = normalize_segment(path).partition("/")
    return container, prefix


def server_prefix(server: str) -> str:
    """Return the blob name prefix shared by every snapshot of ``server``."""

    return f"{normalize_segment(server)}/"


def snapshot_ids_from_blob_names(server: str, names: Iterable[str]) -> list[SnapshotId]:
    """Return the distinct, well-formed snapshots of ``server`` found in ``names``."""

    marker = f"{normalize_segment(server)}_"
    found: set[SnapshotId] = set()
    for name in names:
        parts = name.split("/")
        if len(parts) < 2 or parts[0] != normalize_segment(server):
            continue
        folder = parts[1]
        if not folder.startswith(marker):
            continue
        try:
            found.add(SnapshotId.parse(server, folder[len(marker):]))
        except ConfigurationError:
            continue
    return sorted(found, key=lambda snap: snap.timestamp)
