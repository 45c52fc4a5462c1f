"""Unit tests for GcsBlobStore: mocked storage client, error translation."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gcs_exceptions

from lifecycle_service.errors import NotFoundError, StoreFailureError
from lifecycle_service.stores.blob_store import GcsBlobStore, gs_uri


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def bucket(client) -> MagicMock:
    return client.bucket.return_value


@pytest.fixture
def store(client) -> GcsBlobStore:
    return GcsBlobStore(client=client, bucket="lifecycle-docs")


def test_bucket_required(client):
    with pytest.raises(ValueError):
        GcsBlobStore(client=client, bucket="")


def test_gs_uri():
    assert gs_uri("lifecycle-docs", "D1.pdf") == "gs://lifecycle-docs/D1.pdf"


class TestPut:
    async def test_uploads_with_content_type(self, store, client, bucket):
        await store.put("D1.pdf", b"lion", "application/pdf")

        client.bucket.assert_called_with("lifecycle-docs")
        bucket.blob.assert_called_with("D1.pdf")
        bucket.blob.return_value.upload_from_string.assert_called_once_with(b"lion", content_type="application/pdf")


class TestCopy:
    async def test_server_side_copy_within_bucket(self, store, bucket):
        source = MagicMock()
        bucket.blob.return_value = source

        await store.copy("D1.pdf", "deleted/D1.pdf")

        bucket.copy_blob.assert_called_once_with(source, bucket, new_name="deleted/D1.pdf")

    async def test_missing_source(self, store, bucket):
        bucket.copy_blob.side_effect = gcs_exceptions.NotFound("no such object")

        with pytest.raises(NotFoundError, match="gs://lifecycle-docs/D1.pdf"):
            await store.copy("D1.pdf", "deleted/D1.pdf")


class TestTag:
    async def test_merges_with_existing_metadata(self, store, bucket):
        blob = bucket.blob.return_value
        blob.metadata = {"uploaded-by": "ops"}

        await store.tag("D1.pdf", {"lifecycle-status": "deleting"})

        blob.reload.assert_called_once()
        blob.patch.assert_called_once()
        assert blob.metadata == {"uploaded-by": "ops", "lifecycle-status": "deleting"}

    async def test_object_without_metadata(self, store, bucket):
        blob = bucket.blob.return_value
        blob.metadata = None

        await store.tag("D1.pdf", {"lifecycle-status": "deleting"})

        assert blob.metadata == {"lifecycle-status": "deleting"}

    async def test_missing_object(self, store, bucket):
        bucket.blob.return_value.reload.side_effect = gcs_exceptions.NotFound("gone")

        with pytest.raises(NotFoundError):
            await store.tag("D1.pdf", {"lifecycle-status": "deleting"})
        bucket.blob.return_value.patch.assert_not_called()


class TestDeleteAndExists:
    async def test_delete(self, store, bucket):
        await store.delete("D1.pdf")
        bucket.blob.return_value.delete.assert_called_once()

    async def test_delete_missing(self, store, bucket):
        bucket.blob.return_value.delete.side_effect = gcs_exceptions.NotFound("gone")
        with pytest.raises(NotFoundError):
            await store.delete("D1.pdf")

    async def test_exists(self, store, bucket):
        bucket.blob.return_value.exists.return_value = False
        assert await store.exists("deleted/D1.pdf") is False


class TestFailures:
    async def test_service_error_is_store_failure(self, store, bucket):
        error = gcs_exceptions.ServiceUnavailable("backend unavailable")
        bucket.blob.return_value.delete.side_effect = error

        with pytest.raises(StoreFailureError) as exc_info:
            await store.delete("D1.pdf")

        assert exc_info.value.cause is error
