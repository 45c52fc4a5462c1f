"""Shared test fixtures for the lifecycle service test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from lifecycle_service.coordinator import LifecycleCoordinator
from lifecycle_service.stores.memory import InMemoryBlobStore, InMemoryDocumentStore
from lifecycle_service.types import DocumentDescriptor


class FakeClock:
    """Deterministic clock; advance it explicitly between operations."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 12, 9, 30, tzinfo=UTC))


@pytest.fixture
def metadata_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(page_size=2)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def coordinator(metadata_store, blob_store, clock) -> LifecycleCoordinator:
    return LifecycleCoordinator(metadata=metadata_store, blobs=blob_store, clock=clock)


@pytest.fixture
def lion_pdf() -> DocumentDescriptor:
    return DocumentDescriptor(file_name="lion.pdf", size=50, mimetype="application/pdf")
