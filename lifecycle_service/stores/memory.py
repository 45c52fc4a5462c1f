"""In-process stores for local development (``LIFECYCLE_STORE_BACKEND=memory``) and tests.

They honour the same contracts as the PostgreSQL and GCS adapters,
including page tokens and ``NotFoundError`` for missing keys.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from lifecycle_service.config import LIFECYCLE_PAGE_SIZE
from lifecycle_service.errors import DuplicateIdError, NotFoundError
from lifecycle_service.stores.document_store import decode_page_token, encode_page_token
from lifecycle_service.types import STATUS_FILTER_ALL, DocumentRecord, DocumentStatus


class InMemoryDocumentStore:
    def __init__(self, *, page_size: int = LIFECYCLE_PAGE_SIZE) -> None:
        self._records: dict[str, DocumentRecord] = {}
        self._page_size = max(page_size, 1)

    async def put(self, record: DocumentRecord) -> None:
        if record.document_id in self._records:
            raise DuplicateIdError(f"Document {record.document_id} already exists")
        self._records[record.document_id] = record

    async def get(self, document_id: str) -> DocumentRecord:
        try:
            return self._records[document_id]
        except KeyError:
            raise NotFoundError(f"Document {document_id} not found") from None

    async def update(self, document_id: str, fields: Mapping[str, Any]) -> DocumentRecord:
        current = await self.get(document_id)
        changes = dict(fields)
        if "status" in changes:
            changes["status"] = DocumentStatus(changes["status"])
        updated = dataclasses.replace(current, **changes)
        self._records[document_id] = updated
        return updated

    async def list(
        self,
        status_filter: str,
        pagination_token: str | None,
    ) -> tuple[list[DocumentRecord], str | None]:
        rows = sorted(self._records.values(), key=lambda r: (r.created_at, r.document_id))
        if status_filter != STATUS_FILTER_ALL:
            rows = [r for r in rows if r.status.value == status_filter]
        if pagination_token:
            after = decode_page_token(pagination_token)
            rows = [r for r in rows if (r.created_at, r.document_id) > after]

        page = rows[: self._page_size]
        next_token = None
        if len(rows) > self._page_size:
            next_token = encode_page_token(page[-1].created_at, page[-1].document_id)
        return page, next_token


@dataclass
class StoredBlob:
    data: bytes
    content_type: str
    metadata: dict[str, str] = field(default_factory=dict)


class InMemoryBlobStore:
    def __init__(self) -> None:
        self.objects: dict[str, StoredBlob] = {}

    def _require(self, key: str) -> StoredBlob:
        blob = self.objects.get(key)
        if blob is None:
            raise NotFoundError(f"Blob {key} not found")
        return blob

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = StoredBlob(data=data, content_type=content_type)

    async def copy(self, source_key: str, dest_key: str) -> None:
        src = self._require(source_key)
        self.objects[dest_key] = StoredBlob(
            data=src.data, content_type=src.content_type, metadata=dict(src.metadata)
        )

    async def tag(self, key: str, tags: Mapping[str, str]) -> None:
        self._require(key).metadata.update(tags)

    async def delete(self, key: str) -> None:
        self._require(key)
        del self.objects[key]

    async def exists(self, key: str) -> bool:
        return key in self.objects
