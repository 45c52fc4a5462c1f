from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class DocumentStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"
    DELETING = "deleting"
    DELETED = "deleted"
    DELETE_FAILED = "delete_failed"


STATUS_FILTER_ALL = "all"


@dataclass(frozen=True)
class DocumentDescriptor:
    """What the upload layer knows about a file before a record exists."""

    file_name: str
    size: int
    mimetype: str


@dataclass(frozen=True)
class DocumentRecord:
    document_id: str
    file_name: str
    size: int
    mimetype: str
    status: DocumentStatus
    created_at: datetime
    deleted_at: int | None = None  # epoch seconds
    purge_at: int | None = None  # epoch seconds

    def to_wire(self) -> dict[str, Any]:
        """camelCase shape seen by HTTP clients and event subscribers."""
        return {
            "documentId": self.document_id,
            "fileName": self.file_name,
            "size": self.size,
            "mimetype": self.mimetype,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "deletedAt": self.deleted_at,
            "purgeAt": self.purge_at,
        }


@dataclass(frozen=True)
class DocumentPage:
    records: list[DocumentRecord] = field(default_factory=list)
    next_token: str | None = None  # None on the last page
