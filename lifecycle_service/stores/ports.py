"""Contracts the coordinator needs from its two stores.

Both adapters report a missing document or key as ``NotFoundError`` and wrap
any other I/O failure in ``StoreFailureError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from lifecycle_service.types import DocumentRecord


class MetadataStore(Protocol):
    async def put(self, record: DocumentRecord) -> None:
        """Insert a new record; ``DuplicateIdError`` if the id exists."""
        ...

    async def get(self, document_id: str) -> DocumentRecord: ...

    async def update(self, document_id: str, fields: Mapping[str, Any]) -> DocumentRecord:
        """Apply a partial update and return the stored record."""
        ...

    async def list(
        self,
        status_filter: str,
        pagination_token: str | None,
    ) -> tuple[list[DocumentRecord], str | None]:
        """One page of records plus the continuation token (None when exhausted)."""
        ...


class BlobStore(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> None: ...

    async def copy(self, source_key: str, dest_key: str) -> None: ...

    async def tag(self, key: str, tags: Mapping[str, str]) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...
