"""Azure Blob Storage transfers for snapshot trees."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

import structlog
from azure.core.exceptions import AzureError, ResourceExistsError
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobServiceClient, ContainerClient

from .errors import TransferError
from .naming import normalize_segment


logger = structlog.get_logger(__name__)


def account_url(account: str) -> str:
    return f"https://{account}.blob.core.windows.net"


@dataclass(slots=True, frozen=True)
class RetentionRecord:
    """Read-only view of one stored blob used by the retention sweep."""

    name: str
    last_modified: datetime


class BlobStore:
    """Transfers local directory trees to and from one blob container.

    Failures are reported as :class:`TransferError`; retrying is left to the
    caller.
    """

    def __init__(self, container_client: ContainerClient) -> None:
        self._container = container_client

    @classmethod
    def from_account(
        cls,
        account: str | None,
        container: str,
        *,
        connection_string: str | None = None,
        account_key: str | None = None,
    ) -> "BlobStore":
        if connection_string:
            service = BlobServiceClient.from_connection_string(connection_string)
        elif account_key:
            service = BlobServiceClient(account_url(account), credential=account_key)
        else:
            service = BlobServiceClient(account_url(account), credential=DefaultAzureCredential())
        return cls(service.get_container_client(container))

    @property
    def container_name(self) -> str:
        return self._container.container_name

    def ensure_container(self) -> None:
        """Create the container unless it already exists."""

        try:
            self._container.create_container()
            logger.info("blob_container_created", container=self.container_name)
        except ResourceExistsError:
            return
        except AzureError as exc:
            raise TransferError(f"container_create_failed: {exc}") from exc

    def upload_tree(self, local_dir: Path, prefix: str) -> int:
        """Upload every file below ``local_dir`` under ``prefix``, overwriting.

        Returns the number of uploaded blobs.
        """

        base = normalize_segment(prefix)
        count = 0
        files = sorted(path for path in Path(local_dir).rglob("*") if path.is_file())
        for path in files:
            relative = path.relative_to(local_dir).as_posix()
            name = f"{base}/{relative}" if base else relative
            try:
                with path.open("rb") as handle:
                    self._container.upload_blob(name=name, data=handle, overwrite=True)
            except (AzureError, OSError) as exc:
                raise TransferError(f"upload_failed: {name}: {exc}") from exc
            count += 1
        logger.info("blob_upload_done", prefix=base, blobs=count)
        return count

    def download_tree(self, prefix: str, local_dir: Path) -> int:
        """Download every blob under ``prefix`` into ``local_dir``.

        Blob names are written relative to ``prefix``. An empty listing is an
        error because there is nothing to restore from.
        """

        base = normalize_segment(prefix) + "/"
        destination = Path(local_dir)
        destination.mkdir(parents=True, exist_ok=True)
        count = 0
        try:
            for blob in self._container.list_blobs(name_starts_with=base):
                relative = PurePosixPath(blob.name[len(base):])
                if not relative.parts or ".." in relative.parts:
                    continue
                target = destination.joinpath(*relative.parts)
                target.parent.mkdir(parents=True, exist_ok=True)
                with target.open("wb") as handle:
                    self._container.download_blob(blob.name).readinto(handle)
                count += 1
        except (AzureError, OSError) as exc:
            raise TransferError(f"download_failed: {base}: {exc}") from exc
        if count == 0:
            raise TransferError(f"snapshot_not_found: {base}")
        logger.info("blob_download_done", prefix=base, blobs=count)
        return count

    def list_records(self, prefix: str) -> list[RetentionRecord]:
        try:
            return [
                RetentionRecord(blob.name, _as_utc(blob.last_modified))
                for blob in self._container.list_blobs(name_starts_with=prefix)
            ]
        except AzureError as exc:
            raise TransferError(f"list_failed: {prefix}: {exc}") from exc

    def list_names(self, prefix: str) -> list[str]:
        return [record.name for record in self.list_records(prefix)]

    def has_prefix(self, prefix: str) -> bool:
        base = normalize_segment(prefix) + "/"
        try:
            for _ in self._container.list_blobs(name_starts_with=base):
                return True
        except AzureError as exc:
            raise TransferError(f"list_failed: {base}: {exc}") from exc
        return False

    def delete_blob(self, name: str) -> None:
        try:
            self._container.delete_blob(name)
        except AzureError as exc:
            raise TransferError(f"delete_failed: {name}: {exc}") from exc


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
