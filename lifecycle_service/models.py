"""Pydantic request/response schemas for the lifecycle HTTP API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from lifecycle_service.types import DocumentRecord, DocumentStatus

# -- Documents ----------------------------------------------------------------


class DocumentOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(alias="documentId")
    file_name: str = Field(alias="fileName")
    size: int
    mimetype: str
    status: DocumentStatus
    created_at: datetime = Field(alias="createdAt")
    deleted_at: int | None = Field(None, alias="deletedAt")
    purge_at: int | None = Field(None, alias="purgeAt")

    @classmethod
    def from_record(cls, record: DocumentRecord) -> DocumentOut:
        return cls(
            document_id=record.document_id,
            file_name=record.file_name,
            size=record.size,
            mimetype=record.mimetype,
            status=record.status,
            created_at=record.created_at,
            deleted_at=record.deleted_at,
            purge_at=record.purge_at,
        )


class DocumentListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    documents: list[DocumentOut]
    next_token: str | None = Field(None, alias="nextToken")


class StatusUpdateRequest(BaseModel):
    status: DocumentStatus = Field(..., description="Target lifecycle status")


# -- Health -------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    subscribers: int | None = None
