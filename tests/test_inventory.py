"""Tests for live enumeration and destructive reset."""

from __future__ import annotations

import pytest

from backup.errors import EnumerationError
from backup.inventory import collection_exists, drop_all_collections, iter_units
from backup.naming import INSTANCE_UNIT, BackupUnit
from conftest import FakeMongoClient
from models import UnitMode


def test_iter_units_lists_every_collection(mongo) -> None:
    units = list(iter_units(mongo))

    assert units == [BackupUnit("dbA", "c1"), BackupUnit("dbA", "c2"), BackupUnit("dbB", "c3")]


def test_iter_units_honours_exclusions() -> None:
    client = FakeMongoClient({"admin": ["system.version"], "local": ["startup_log"], "app": ["users"]})

    assert list(iter_units(client, excluded_databases=["local"])) == [
        BackupUnit("admin", "system.version"),
        BackupUnit("app", "users"),
    ]


def test_collections_are_listed_when_database_is_reached(mongo) -> None:
    units = iter_units(mongo)
    assert next(units) == BackupUnit("dbA", "c1")

    mongo.data["dbB"].append("late")

    assert list(units) == [BackupUnit("dbA", "c2"), BackupUnit("dbB", "c3"), BackupUnit("dbB", "late")]


def test_collection_created_after_listing_is_not_included(mongo) -> None:
    units = iter_units(mongo)
    next(units)
    mongo.data["dbA"].append("late")

    assert BackupUnit("dbA", "late") not in list(units)


def test_unreachable_deployment_raises_enumeration_error() -> None:
    with pytest.raises(EnumerationError):
        next(iter_units(FakeMongoClient(unreachable=True)))


def test_instance_mode_yields_single_unit(mongo) -> None:
    assert list(iter_units(mongo, UnitMode.instance)) == [INSTANCE_UNIT]

    with pytest.raises(EnumerationError):
        list(iter_units(FakeMongoClient(unreachable=True), UnitMode.instance))


def test_collection_exists(mongo) -> None:
    assert collection_exists(mongo, BackupUnit("dbA", "c1")) is True
    assert collection_exists(mongo, BackupUnit("dbA", "gone")) is False
    assert collection_exists(mongo, INSTANCE_UNIT) is True


def test_drop_all_collections_spares_system_databases() -> None:
    client = FakeMongoClient(
        {
            "admin": ["system.users"],
            "config": ["system.sessions"],
            "local": ["startup_log"],
            "app": ["users", "system.views"],
            "logs": ["events"],
        }
    )

    dropped = drop_all_collections(client)

    assert dropped == ["app.users", "logs.events"]
    assert client.data["admin"] == ["system.users"]
    assert client.data["local"] == ["startup_log"]
    assert client.data["app"] == ["system.views"]
