"""Live inventory of the source deployment and destructive reset of a target."""

from __future__ import annotations

from typing import Iterable, Iterator

import structlog
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from models import UnitMode

from .errors import EnumerationError, ResetError
from .naming import INSTANCE_UNIT, BackupUnit


logger = structlog.get_logger(__name__)

SYSTEM_DATABASES = frozenset({"admin", "local", "config"})


def create_client(uri: str, *, timeout_ms: int = 10_000) -> MongoClient:
    """Return a client that fails fast when the deployment is unreachable."""

    return MongoClient(uri, serverSelectionTimeoutMS=timeout_ms)


def list_databases(client: MongoClient, excluded: Iterable[str] = ()) -> list[str]:
    """Return database names in server order, minus ``excluded``."""

    skip = set(excluded)
    try:
        names = client.list_database_names()
    except PyMongoError as exc:
        raise EnumerationError(f"list_databases_failed: {exc}") from exc
    return [name for name in names if name not in skip]


def list_collections(client: MongoClient, database: str) -> list[str]:
    try:
        return list(client[database].list_collection_names())
    except PyMongoError as exc:
        raise EnumerationError(f"list_collections_failed: {database}: {exc}") from exc


def iter_units(
    client: MongoClient,
    mode: UnitMode = UnitMode.collection,
    excluded_databases: Iterable[str] = (),
) -> Iterator[BackupUnit]:
    """Yield the units to back up, querying the deployment as it goes.

    The database list is fetched up front so an unreachable deployment fails
    before any unit is produced. Collection lists are fetched per database
    when that database is reached; collections created afterwards are not
    part of the run.
    """

    if mode is UnitMode.instance:
        try:
            client.admin.command("ping")
        except PyMongoError as exc:
            raise EnumerationError(f"ping_failed: {exc}") from exc
        yield INSTANCE_UNIT
        return

    databases = list_databases(client, excluded_databases)
    logger.info("inventory_databases", count=len(databases))
    for database in databases:
        collections = list_collections(client, database)
        logger.info("inventory_collections", database=database, count=len(collections))
        for collection in collections:
            yield BackupUnit(database, collection)


def collection_exists(client: MongoClient, unit: BackupUnit) -> bool:
    """Return ``True`` if ``unit`` is still present on the deployment."""

    if unit.is_instance:
        return True
    try:
        names = client[unit.database].list_collection_names(filter={"name": unit.collection})
    except PyMongoError as exc:
        raise EnumerationError(f"collection_check_failed: {unit.label}: {exc}") from exc
    return len(list(names)) > 0


def drop_all_collections(client: MongoClient) -> list[str]:
    """Drop every user collection of every non-system database.

    Returns the dropped namespaces. This cannot be undone.
    """

    dropped: list[str] = []
    try:
        for database in client.list_database_names():
            if database in SYSTEM_DATABASES:
                continue
            handle = client[database]
            for collection in handle.list_collection_names():
                if collection.startswith("system."):
                    continue
                handle.drop_collection(collection)
                dropped.append(f"{database}.{collection}")
                logger.info("collection_dropped", database=database, collection=collection)
    except PyMongoError as exc:
        raise ResetError(f"drop_failed after {len(dropped)} collections: {exc}") from exc
    return dropped
