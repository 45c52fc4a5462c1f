"""PostgreSQL metadata store for document records (table ``lifecycle_documents``).

Listing uses keyset pagination over ``(created_at, document_id)`` so page
boundaries stay stable while new documents are being created. The
continuation token is opaque to callers: URL-safe base64 of the last row's
sort key.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import AbstractAsyncContextManager, contextmanager
from datetime import datetime
from typing import Any

import asyncpg

from lifecycle_service import db
from lifecycle_service.config import LIFECYCLE_PAGE_SIZE
from lifecycle_service.errors import DuplicateIdError, NotFoundError, StoreFailureError
from lifecycle_service.types import STATUS_FILTER_ALL, DocumentRecord, DocumentStatus

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], AbstractAsyncContextManager[asyncpg.Connection]]

_COLUMNS = "document_id, file_name, size, mimetype, status, created_at, deleted_at, purge_at"
_UPDATABLE = {"status", "deleted_at", "purge_at"}


def encode_page_token(created_at: datetime, document_id: str) -> str:
    raw = json.dumps({"c": created_at.isoformat(), "id": document_id}).encode()
    return base64.urlsafe_b64encode(raw).decode()


def decode_page_token(token: str) -> tuple[datetime, str]:
    try:
        payload = json.loads(base64.urlsafe_b64decode(token.encode()))
        return datetime.fromisoformat(payload["c"]), str(payload["id"])
    except (binascii.Error, ValueError, KeyError, TypeError) as e:
        raise ValueError("Invalid pagination token") from e


def _row_to_record(row: Mapping[str, Any]) -> DocumentRecord:
    return DocumentRecord(
        document_id=row["document_id"],
        file_name=row["file_name"],
        size=row["size"],
        mimetype=row["mimetype"],
        status=DocumentStatus(row["status"]),
        created_at=row["created_at"],
        deleted_at=row["deleted_at"],
        purge_at=row["purge_at"],
    )


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into the lifecycle error taxonomy."""
    try:
        yield
    except asyncpg.UniqueViolationError as e:
        raise DuplicateIdError(str(e)) from e
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        logger.warning("Metadata store %s failed: %s", operation, e)
        raise StoreFailureError(f"metadata store {operation} failed", cause=e) from e


class PgDocumentStore:
    """MetadataStore backed by asyncpg."""

    def __init__(
        self,
        *,
        connection: ConnectionFactory = db.connection,
        page_size: int = LIFECYCLE_PAGE_SIZE,
    ) -> None:
        self._connection = connection
        self._page_size = max(page_size, 1)

    async def put(self, record: DocumentRecord) -> None:
        with _store_errors("put"):
            async with self._connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO lifecycle_documents
                        (document_id, file_name, size, mimetype, status,
                         created_at, deleted_at, purge_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    """,
                    record.document_id,
                    record.file_name,
                    record.size,
                    record.mimetype,
                    record.status.value,
                    record.created_at,
                    record.deleted_at,
                    record.purge_at,
                )

    async def get(self, document_id: str) -> DocumentRecord:
        with _store_errors("get"):
            async with self._connection() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_COLUMNS} FROM lifecycle_documents WHERE document_id = $1",
                    document_id,
                )
        if row is None:
            raise NotFoundError(f"Document {document_id} not found")
        return _row_to_record(row)

    async def update(self, document_id: str, fields: Mapping[str, Any]) -> DocumentRecord:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        if not fields:
            return await self.get(document_id)

        names = sorted(fields)
        values = [
            fields[n].value if isinstance(fields[n], DocumentStatus) else fields[n]
            for n in names
        ]
        assignments = ", ".join(f"{n} = ${i}" for i, n in enumerate(names, start=2))

        with _store_errors("update"):
            async with self._connection() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE lifecycle_documents
                    SET {assignments}, updated_at = NOW()
                    WHERE document_id = $1
                    RETURNING {_COLUMNS}
                    """,
                    document_id,
                    *values,
                )
        if row is None:
            raise NotFoundError(f"Document {document_id} not found")
        return _row_to_record(row)

    async def list(
        self,
        status_filter: str,
        pagination_token: str | None,
    ) -> tuple[list[DocumentRecord], str | None]:
        status = None if status_filter == STATUS_FILTER_ALL else status_filter
        after_created: datetime | None = None
        after_id: str | None = None
        if pagination_token:
            after_created, after_id = decode_page_token(pagination_token)

        with _store_errors("list"):
            async with self._connection() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {_COLUMNS}
                    FROM lifecycle_documents
                    WHERE ($1::text IS NULL OR status = $1)
                      AND ($2::timestamptz IS NULL OR (created_at, document_id) > ($2, $3::text))
                    ORDER BY created_at, document_id
                    LIMIT $4
                    """,
                    status,
                    after_created,
                    after_id,
                    self._page_size + 1,
                )

        records = [_row_to_record(r) for r in rows[: self._page_size]]
        next_token = None
        if len(rows) > self._page_size:
            last = records[-1]
            next_token = encode_page_token(last.created_at, last.document_id)
        return records, next_token
