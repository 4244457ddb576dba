"""Expiry of old snapshot blobs."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from .errors import TransferError
from .naming import server_prefix
from .storage import BlobStore


logger = structlog.get_logger(__name__)


def sweep(
    store: BlobStore,
    server: str,
    horizon_days: int,
    *,
    now: datetime | None = None,
) -> int:
    """Delete blobs of ``server`` last modified before ``now - horizon_days``.

    The ``<server>/`` marker blob is never deleted. Returns the number of
    deleted blobs; a blob that cannot be deleted is logged and left for the
    next sweep.
    """

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    cutoff = current - timedelta(days=horizon_days)
    prefix = server_prefix(server)

    deleted = 0
    for record in store.list_records(prefix):
        if record.name == prefix:
            continue
        if record.last_modified >= cutoff:
            continue
        try:
            store.delete_blob(record.name)
        except TransferError as exc:
            logger.warning("retention_delete_failed", blob=record.name, error=str(exc))
            continue
        deleted += 1
        logger.info("retention_deleted", blob=record.name, last_modified=record.last_modified.isoformat())

    logger.info("retention_sweep_done", server=server, cutoff=cutoff.isoformat(), deleted=deleted)
    return deleted
