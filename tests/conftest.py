"""Pytest fixtures: in-memory blob container and MongoDB client fakes."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from pymongo.errors import ServerSelectionTimeoutError

from backup.storage import BlobStore
from backup.tools import ToolResult


class FakeDownload:
    def __init__(self, payload: bytes) -> None:
        self._payload = payload

    def readinto(self, handle) -> int:  # noqa: ANN001
        handle.write(self._payload)
        return len(self._payload)


class FakeContainerClient:
    """Keeps blobs in a dict; ``last_modified`` is set on every write."""

    def __init__(self, name: str = "mongodbbackup", *, exists: bool = False) -> None:
        self.container_name = name
        self.exists = exists
        self.blobs: dict[str, SimpleNamespace] = {}
        self.create_calls = 0
        self.upload_calls: list[str] = []
        self.deleted: list[str] = []
        self.now = datetime.now(timezone.utc)
        self.fail_upload = 0
        self.fail_listing = False

    def create_container(self) -> None:
        self.create_calls += 1
        if self.exists:
            raise ResourceExistsError("ContainerAlreadyExists")
        self.exists = True

    def upload_blob(self, name, data, overwrite=False):  # noqa: ANN001
        if self.fail_upload:
            self.fail_upload -= 1
            raise ResourceNotFoundError("upload refused")
        if name in self.blobs and not overwrite:
            raise ResourceExistsError(name)
        payload = data.read() if hasattr(data, "read") else data
        self.upload_calls.append(name)
        self.put(name, payload, self.now)

    def put(self, name: str, payload: bytes, last_modified: datetime) -> None:
        self.blobs[name] = SimpleNamespace(name=name, payload=payload, last_modified=last_modified)

    def list_blobs(self, name_starts_with=None):  # noqa: ANN001
        if self.fail_listing:
            raise ResourceNotFoundError("listing refused")
        prefix = name_starts_with or ""
        return iter([blob for name, blob in sorted(self.blobs.items()) if name.startswith(prefix)])

    def download_blob(self, name):  # noqa: ANN001
        return FakeDownload(self.blobs[name].payload)

    def delete_blob(self, name):  # noqa: ANN001
        if name not in self.blobs:
            raise ResourceNotFoundError(name)
        del self.blobs[name]
        self.deleted.append(name)


class FakeDatabase:
    def __init__(self, client: "FakeMongoClient", name: str) -> None:
        self._client = client
        self.name = name

    def list_collection_names(self, filter=None):  # noqa: A002, ANN001
        self._client.calls.append(("list_collection_names", self.name))
        if self._client.unreachable:
            raise ServerSelectionTimeoutError("no servers")
        names = list(self._client.data.get(self.name, []))
        if filter and "name" in filter:
            names = [name for name in names if name == filter["name"]]
        return names

    def drop_collection(self, name: str) -> None:
        self._client.dropped.append(f"{self.name}.{name}")
        self._client.data[self.name].remove(name)

    def command(self, name: str):  # noqa: ANN001
        if self._client.unreachable:
            raise ServerSelectionTimeoutError("no servers")
        return {"ok": 1}


class FakeMongoClient:
    def __init__(self, data: dict[str, list[str]] | None = None, *, unreachable: bool = False) -> None:
        self.data = {db: list(colls) for db, colls in (data or {}).items()}
        self.unreachable = unreachable
        self.dropped: list[str] = []
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def list_database_names(self) -> list[str]:
        self.calls.append(("list_database_names", ""))
        if self.unreachable:
            raise ServerSelectionTimeoutError("no servers")
        return list(self.data)

    def __getitem__(self, name: str) -> FakeDatabase:
        return FakeDatabase(self, name)

    @property
    def admin(self) -> FakeDatabase:
        return FakeDatabase(self, "admin")

    def close(self) -> None:
        self.closed = True


class FakeMongoTools:
    """Stands in for ``MongoTools``: writes a dump tree and records loads."""

    def __init__(self, *, dump_failures: int = 0, failing_loads: set[str] | None = None) -> None:
        self.dump_failures = dump_failures
        self.failing_loads = failing_loads or set()
        self.dumped: list[str] = []
        self.loaded: list[tuple[str, str]] = []

    def dump(self, unit, output_dir: Path) -> ToolResult:  # noqa: ANN001
        self.dumped.append(unit.label)
        if self.dump_failures:
            self.dump_failures -= 1
            return ToolResult(False, 1, "connection reset", ("mongodump",))
        if unit.is_instance:
            target = Path(output_dir) / "dbA"
            target.mkdir(parents=True, exist_ok=True)
            (target / "c1.bson").write_bytes(b"instance-c1")
            (target / "c1.metadata.json").write_text("{}")
        else:
            target = Path(output_dir) / unit.database
            target.mkdir(parents=True, exist_ok=True)
            (target / f"{unit.collection}.bson").write_bytes(f"bson:{unit.label}".encode())
            (target / f"{unit.collection}.metadata.json").write_text("{}")
        return ToolResult(True, 0, "", ("mongodump",))

    def load(self, unit, input_path: Path) -> ToolResult:  # noqa: ANN001
        self.loaded.append((unit.label, Path(input_path).read_bytes().decode()))
        if unit.label in self.failing_loads:
            return ToolResult(False, 1, "E11000 duplicate key", ("mongorestore",))
        return ToolResult(True, 0, "", ("mongorestore",))


@pytest.fixture
def container() -> FakeContainerClient:
    return FakeContainerClient()


@pytest.fixture
def store(container: FakeContainerClient) -> BlobStore:
    return BlobStore(container)


@pytest.fixture
def mongo() -> FakeMongoClient:
    return FakeMongoClient({"dbA": ["c1", "c2"], "dbB": ["c3"]})
