"""Unit test conftest: no database or GCS required."""

from __future__ import annotations

import pytest

from lifecycle_service.coordinator import blob_key
from lifecycle_service.stores.memory import InMemoryBlobStore


@pytest.fixture
def stored_blob(blob_store: InMemoryBlobStore):
    """Put a payload where the upload layer would have put it before ``create_document``."""

    async def _store(document_id: str, file_name: str, data: bytes = b"%PDF-1.4 lion") -> str:
        key = blob_key(document_id, file_name)
        await blob_store.put(key, data, "application/pdf")
        return key

    return _store
