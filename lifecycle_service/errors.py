"""Failure taxonomy shared by the coordinator, the stores and the HTTP layer."""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for every failure the coordinator reports."""

    code = "LIFECYCLE_ERROR"


class NotFoundError(LifecycleError):
    """Document record or blob key is absent."""

    code = "NOT_FOUND"


class ConflictError(LifecycleError):
    """The requested transition is illegal in the document's current status."""

    code = "CONFLICT"


class DuplicateIdError(LifecycleError):
    """A record with the same document id already exists."""

    code = "DUPLICATE_ID"


class StoreFailureError(LifecycleError):
    """Opaque I/O failure in the metadata store or blob store.

    The original exception is kept on ``cause`` (and chained as
    ``__cause__`` by the raising adapter).
    """

    code = "STORE_FAILURE"

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
