"""Google Cloud Storage blob store for document payloads.

The storage SDK is synchronous, so every call runs in a worker thread via
``asyncio.to_thread`` to keep the event loop free for broadcaster traffic.
Deletion tags are written as custom object metadata, merged with whatever
metadata the object already carries.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import TypeVar

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from lifecycle_service.errors import NotFoundError, StoreFailureError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def gs_uri(bucket: str, name: str) -> str:
    return f"gs://{bucket}/{name}"


def upload_bytes(client: storage.Client, bucket: str, name: str, data: bytes, *, content_type: str) -> None:
    blob = client.bucket(bucket).blob(name)
    blob.upload_from_string(data, content_type=content_type)


def copy_object(client: storage.Client, bucket: str, source: str, dest: str) -> None:
    b = client.bucket(bucket)
    b.copy_blob(b.blob(source), b, new_name=dest)


def merge_metadata(client: storage.Client, bucket: str, name: str, tags: Mapping[str, str]) -> None:
    blob = client.bucket(bucket).blob(name)
    blob.reload()  # raises NotFound for a missing object
    blob.metadata = {**(blob.metadata or {}), **tags}
    blob.patch()


def delete_object(client: storage.Client, bucket: str, name: str) -> None:
    client.bucket(bucket).blob(name).delete()


def object_exists(client: storage.Client, bucket: str, name: str) -> bool:
    return bool(client.bucket(bucket).blob(name).exists())


class GcsBlobStore:
    """BlobStore over a single GCS bucket."""

    def __init__(self, *, client: storage.Client, bucket: str) -> None:
        if not bucket:
            raise ValueError("LIFECYCLE_BLOB_BUCKET is required for the GCS blob store")
        self._client = client
        self._bucket = bucket

    async def _run(self, operation: str, key: str, fn: Callable[..., T], *args: object, **kwargs: object) -> T:
        try:
            return await asyncio.to_thread(fn, self._client, self._bucket, *args, **kwargs)
        except gcs_exceptions.NotFound as e:
            raise NotFoundError(f"Blob {gs_uri(self._bucket, key)} not found") from e
        except gcs_exceptions.GoogleAPIError as e:
            logger.warning("Blob store %s failed for %s: %s", operation, key, e)
            raise StoreFailureError(f"blob store {operation} failed", cause=e) from e

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        await self._run("put", key, upload_bytes, key, data, content_type=content_type)

    async def copy(self, source_key: str, dest_key: str) -> None:
        await self._run("copy", source_key, copy_object, source_key, dest_key)

    async def tag(self, key: str, tags: Mapping[str, str]) -> None:
        await self._run("tag", key, merge_metadata, key, dict(tags))

    async def delete(self, key: str) -> None:
        await self._run("delete", key, delete_object, key)

    async def exists(self, key: str) -> bool:
        return await self._run("exists", key, object_exists, key)
