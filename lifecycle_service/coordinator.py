"""Lifecycle coordinator: the single writer of document status.

Every mutating path performs its blob-store side effect first and the
metadata write second. The metadata write is the commit point: if the
process dies in between, the record still shows the previous status and
the caller can retry the same transition. Blob copy/delete are therefore
treated as idempotent during delete finalization.

The coordinator never publishes change events; HTTP handlers hand the
returned record to the broadcaster once the call has succeeded.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import UTC, datetime

from lifecycle_service.config import LIFECYCLE_PURGE_AFTER_DAYS, LIFECYCLE_RETENTION_PREFIX
from lifecycle_service.errors import ConflictError, NotFoundError
from lifecycle_service.stores.ports import BlobStore, MetadataStore
from lifecycle_service.types import (
    STATUS_FILTER_ALL,
    DocumentDescriptor,
    DocumentPage,
    DocumentRecord,
    DocumentStatus,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400
PURGE_AFTER_SECONDS = LIFECYCLE_PURGE_AFTER_DAYS * SECONDS_PER_DAY

_VALID_FILTERS = {STATUS_FILTER_ALL} | {s.value for s in DocumentStatus}


def _now() -> datetime:
    return datetime.now(UTC)


def blob_key(document_id: str, file_name: str) -> str:
    """Blob-store key for a document: its id plus the upload's extension, if any."""
    return f"{document_id}{os.path.splitext(file_name)[1]}"


def compute_purge_at(deleted_at: int, purge_after_seconds: int = PURGE_AFTER_SECONDS) -> int:
    return deleted_at + purge_after_seconds


class LifecycleCoordinator:
    def __init__(
        self,
        *,
        metadata: MetadataStore,
        blobs: BlobStore,
        clock: Callable[[], datetime] = _now,
        retention_prefix: str = LIFECYCLE_RETENTION_PREFIX,
        purge_after_seconds: int = PURGE_AFTER_SECONDS,
    ) -> None:
        self._metadata = metadata
        self._blobs = blobs
        self._clock = clock
        self._retention_prefix = retention_prefix
        self._purge_after_seconds = purge_after_seconds

    def retention_key(self, key: str) -> str:
        return f"{self._retention_prefix}{key}"

    async def create_document(self, descriptor: DocumentDescriptor, document_id: str) -> DocumentRecord:
        """Record a freshly uploaded document as ``pending``.

        The blob must already be stored under ``blob_key(document_id, ...)``.
        Raises DuplicateIdError if ``document_id`` is taken.
        """
        if not document_id:
            raise ValueError("document_id is required")

        record = DocumentRecord(
            document_id=document_id,
            file_name=descriptor.file_name,
            size=descriptor.size,
            mimetype=descriptor.mimetype,
            status=DocumentStatus.PENDING,
            created_at=self._clock(),
        )
        await self._metadata.put(record)
        logger.info("Document %s created (%s, %d bytes)", document_id, descriptor.file_name, descriptor.size)
        return record

    async def fetch_document(self, document_id: str) -> DocumentRecord:
        return await self._metadata.get(document_id)

    async def fetch_all_documents(
        self,
        status_filter: str = STATUS_FILTER_ALL,
        pagination_token: str | None = None,
    ) -> DocumentPage:
        if status_filter not in _VALID_FILTERS:
            raise ValueError(f"Unknown status filter: {status_filter}")
        records, next_token = await self._metadata.list(status_filter, pagination_token)
        return DocumentPage(records=records, next_token=next_token)

    async def update_document(self, document_id: str, status: DocumentStatus | str) -> DocumentRecord:
        """Write a new status.

        Targets ``deleting`` and ``deleted`` are never plain writes: they go
        through ``delete_document`` and ``finalize_delete`` so the running
        guard and the blob side effects apply to every caller.
        """
        target = DocumentStatus(status)
        if target is DocumentStatus.DELETING:
            return await self.delete_document(document_id)
        if target is DocumentStatus.DELETED:
            return await self.finalize_delete(document_id)

        record = await self._metadata.update(document_id, {"status": target})
        logger.info("Document %s status -> %s", document_id, target.value)
        return record

    async def delete_document(self, document_id: str) -> DocumentRecord:
        """Acknowledge a delete request; the record moves to ``deleting``.

        Raises ConflictError while the document is ``running``.
        """
        current = await self._metadata.get(document_id)
        if current.status is DocumentStatus.RUNNING:
            raise ConflictError(f"Document {document_id} is running and cannot be deleted")

        key = blob_key(document_id, current.file_name)
        requested_at = int(self._clock().timestamp())
        await self._blobs.tag(
            key,
            {
                "lifecycle-status": DocumentStatus.DELETING.value,
                "delete-requested-at": str(requested_at),
            },
        )

        record = await self._metadata.update(document_id, {"status": DocumentStatus.DELETING})
        logger.info("Document %s status %s -> deleting", document_id, current.status.value)
        return record

    async def finalize_delete(self, document_id: str) -> DocumentRecord:
        """Move the blob to retention and stamp ``deleted_at``/``purge_at``.

        The timestamps are written exactly once: a record that is already
        ``deleted`` is returned untouched, and a record that was deleted before
        and moved to another status since keeps its original stamps.
        """
        current = await self._metadata.get(document_id)
        if current.status is DocumentStatus.DELETED and current.deleted_at is not None:
            return current

        key = blob_key(document_id, current.file_name)
        retained = self.retention_key(key)

        try:
            await self._blobs.copy(key, retained)
        except NotFoundError:
            if not await self._blobs.exists(retained):
                raise
            logger.info("Blob %s already retained at %s", key, retained)

        try:
            await self._blobs.delete(key)
        except NotFoundError:
            logger.info("Blob %s already removed", key)

        fields: dict[str, object] = {"status": DocumentStatus.DELETED}
        if current.deleted_at is None:
            deleted_at = int(self._clock().timestamp())
            fields["deleted_at"] = deleted_at
            fields["purge_at"] = compute_purge_at(deleted_at, self._purge_after_seconds)

        record = await self._metadata.update(document_id, fields)
        logger.info("Document %s deleted; purge at %s", document_id, fields.get("purge_at", current.purge_at))
        return record
