"""Tests for the remote layout of snapshots."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from backup.errors import ConfigurationError
from backup.naming import (
    INSTANCE_UNIT,
    BackupUnit,
    SnapshotId,
    snapshot_ids_from_blob_names,
    snapshot_root,
    split_container,
    unit_path,
)


def test_unit_paths_follow_server_timestamp_layout() -> None:
    snapshot = SnapshotId("srv1", "2024-01-02-03-04-05")
    units = [BackupUnit("dbA", "c1"), BackupUnit("dbA", "c2"), BackupUnit("dbB", "c3")]

    paths = [unit_path("mongodbbackup", snapshot, unit) for unit in units]

    assert paths == [
        "mongodbbackup/srv1/srv1_2024-01-02-03-04-05/dbA/c1",
        "mongodbbackup/srv1/srv1_2024-01-02-03-04-05/dbA/c2",
        "mongodbbackup/srv1/srv1_2024-01-02-03-04-05/dbB/c3",
    ]
    assert len(set(paths)) == len(paths)


def test_instance_unit_is_written_at_snapshot_root() -> None:
    snapshot = SnapshotId("srv1", "2024-01-02-03-04-05")

    assert unit_path("mongodbbackup", snapshot, INSTANCE_UNIT) == snapshot_root("mongodbbackup", snapshot)
    assert snapshot_root("/mongodbbackup/", snapshot) == "mongodbbackup/srv1/srv1_2024-01-02-03-04-05"


def test_snapshot_now_uses_utc_seconds() -> None:
    moment = datetime(2024, 1, 2, 3, 4, 5, 987654, tzinfo=timezone.utc)

    assert SnapshotId.now("srv1", now=moment).timestamp == "2024-01-02-03-04-05"


def test_snapshot_parse_rejects_malformed_timestamps() -> None:
    assert SnapshotId.parse("srv1", " 2024-01-02-03-04-05 ").timestamp == "2024-01-02-03-04-05"
    with pytest.raises(ConfigurationError):
        SnapshotId.parse("srv1", "2024-01-02T03:04:05")


def test_split_container_separates_blob_prefix() -> None:
    assert split_container("mongodbbackup/srv1/srv1_x/dbA/c1") == ("mongodbbackup", "srv1/srv1_x/dbA/c1")


def test_snapshot_ids_listed_in_chronological_order() -> None:
    names = [
        "srv1/",
        "srv1/srv1_2024-01-03-00-00-00/dbA/c1/c1.bson",
        "srv1/srv1_2024-01-02-03-04-05/dbA/c1/c1.bson",
        "srv1/srv1_2024-01-02-03-04-05/dbA/c2/c2.bson",
        "srv1/srv1_garbage/dbA/c1/c1.bson",
        "srv2/srv2_2024-01-02-03-04-05/dbA/c1/c1.bson",
    ]

    found = snapshot_ids_from_blob_names("srv1", names)

    assert [snap.timestamp for snap in found] == ["2024-01-02-03-04-05", "2024-01-03-00-00-00"]
