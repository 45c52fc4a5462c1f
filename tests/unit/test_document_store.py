"""Unit tests for PgDocumentStore: mock connection, verify SQL shape and error mapping."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import asyncpg
import pytest

from lifecycle_service.errors import DuplicateIdError, NotFoundError, StoreFailureError
from lifecycle_service.stores.document_store import (
    PgDocumentStore,
    decode_page_token,
    encode_page_token,
)
from lifecycle_service.types import DocumentRecord, DocumentStatus

CREATED = datetime(2025, 3, 12, 9, 30, tzinfo=UTC)


def _row(document_id: str = "D1", status: str = "pending", **overrides) -> dict:
    row = {
        "document_id": document_id,
        "file_name": "lion.pdf",
        "size": 50,
        "mimetype": "application/pdf",
        "status": status,
        "created_at": CREATED,
        "deleted_at": None,
        "purge_at": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def mock_conn() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def store(mock_conn) -> PgDocumentStore:
    @asynccontextmanager
    async def _connection():
        yield mock_conn

    return PgDocumentStore(connection=_connection, page_size=2)


class TestPageToken:
    def test_token_carries_sort_key(self):
        token = encode_page_token(CREATED, "D9")
        assert decode_page_token(token) == (CREATED, "D9")

    @pytest.mark.parametrize("token", ["not-base64!!", "bm90IGpzb24=", "e30="])
    def test_garbage_rejected(self, token):
        with pytest.raises(ValueError, match="Invalid pagination token"):
            decode_page_token(token)


class TestPut:
    async def test_inserts_all_columns(self, store, mock_conn):
        record = DocumentRecord(
            document_id="D1",
            file_name="lion.pdf",
            size=50,
            mimetype="application/pdf",
            status=DocumentStatus.PENDING,
            created_at=CREATED,
        )

        await store.put(record)

        sql, *args = mock_conn.execute.call_args.args
        assert "INSERT INTO lifecycle_documents" in sql
        assert args == ["D1", "lion.pdf", 50, "application/pdf", "pending", CREATED, None, None]

    async def test_duplicate_id(self, store, mock_conn):
        mock_conn.execute.side_effect = asyncpg.UniqueViolationError("duplicate key")
        record = DocumentRecord("D1", "lion.pdf", 50, "application/pdf", DocumentStatus.PENDING, CREATED)

        with pytest.raises(DuplicateIdError):
            await store.put(record)


class TestGet:
    async def test_found(self, store, mock_conn):
        mock_conn.fetchrow.return_value = _row(status="finished")

        record = await store.get("D1")

        assert record.status is DocumentStatus.FINISHED
        assert record.created_at == CREATED
        assert mock_conn.fetchrow.call_args.args[1] == "D1"

    async def test_missing(self, store, mock_conn):
        mock_conn.fetchrow.return_value = None
        with pytest.raises(NotFoundError):
            await store.get("D404")

    async def test_connection_failure(self, store, mock_conn):
        mock_conn.fetchrow.side_effect = OSError("connection refused")

        with pytest.raises(StoreFailureError) as exc_info:
            await store.get("D1")

        assert isinstance(exc_info.value.cause, OSError)


class TestUpdate:
    async def test_set_clause_and_params(self, store, mock_conn):
        mock_conn.fetchrow.return_value = _row(status="deleted", deleted_at=1_741_771_800, purge_at=1_749_547_800)

        record = await store.update(
            "D1",
            {"status": DocumentStatus.DELETED, "purge_at": 1_749_547_800, "deleted_at": 1_741_771_800},
        )

        sql, *args = mock_conn.fetchrow.call_args.args
        assert "deleted_at = $2, purge_at = $3, status = $4" in sql
        assert "RETURNING" in sql
        assert args == ["D1", 1_741_771_800, 1_749_547_800, "deleted"]
        assert record.purge_at == 1_749_547_800

    async def test_unknown_field_rejected(self, store, mock_conn):
        with pytest.raises(ValueError):
            await store.update("D1", {"file_name": "tiger.pdf"})
        mock_conn.fetchrow.assert_not_called()

    async def test_missing(self, store, mock_conn):
        mock_conn.fetchrow.return_value = None
        with pytest.raises(NotFoundError):
            await store.update("D404", {"status": DocumentStatus.FAILED})

    async def test_postgres_error(self, store, mock_conn):
        mock_conn.fetchrow.side_effect = asyncpg.PostgresError("boom")
        with pytest.raises(StoreFailureError):
            await store.update("D1", {"status": DocumentStatus.FAILED})


class TestList:
    async def test_first_page_unfiltered(self, store, mock_conn):
        mock_conn.fetch.return_value = [_row("D1"), _row("D2")]

        records, token = await store.list("all", None)

        sql, *args = mock_conn.fetch.call_args.args
        assert "ORDER BY created_at, document_id" in sql
        assert args == [None, None, None, 3]
        assert [r.document_id for r in records] == ["D1", "D2"]
        assert token is None

    async def test_extra_row_yields_token(self, store, mock_conn):
        mock_conn.fetch.return_value = [_row("D1"), _row("D2"), _row("D3")]

        records, token = await store.list("pending", None)

        assert [r.document_id for r in records] == ["D1", "D2"]
        assert decode_page_token(token) == (CREATED, "D2")
        assert mock_conn.fetch.call_args.args[1] == "pending"

    async def test_token_becomes_keyset_params(self, store, mock_conn):
        mock_conn.fetch.return_value = []

        await store.list("all", encode_page_token(CREATED, "D2"))

        _, status, after_created, after_id, limit = mock_conn.fetch.call_args.args
        assert (status, after_created, after_id, limit) == (None, CREATED, "D2", 3)

    async def test_invalid_token(self, store, mock_conn):
        with pytest.raises(ValueError):
            await store.list("all", "%%%")
        mock_conn.fetch.assert_not_called()
