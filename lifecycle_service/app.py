"""FastAPI entry point for the document lifecycle service.

Endpoints:
- POST   /v1/documents        - Upload a file: store blob, create ``pending`` record
- GET    /v1/documents        - Page through records (``?status=``, ``?token=``)
- GET    /v1/documents/{id}   - Fetch one record
- PATCH  /v1/documents/{id}   - Status transition
- DELETE /v1/documents/{id}   - Request deletion (record moves to ``deleting``)
- GET    /v1/events           - Server-Sent Events stream of record changes
- GET    /liveness            - Health check
- GET    /readiness           - Store connectivity check

The coordinator and broadcaster are built once in the lifespan and live on
``app.state``; handlers reach them through dependencies. Every successful
mutation is published to the broadcaster by the handler after the
coordinator returns.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from google.cloud import storage
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from lifecycle_service.auth import get_identity, is_public_path, require_auth_on_cloud_run
from lifecycle_service.broadcaster import ChangeBroadcaster, format_sse
from lifecycle_service.config import (
    LIFECYCLE_BLOB_BUCKET,
    LIFECYCLE_CORS_ALLOW_CREDENTIALS,
    LIFECYCLE_CORS_ALLOW_HEADERS,
    LIFECYCLE_CORS_ALLOW_METHODS,
    LIFECYCLE_CORS_ALLOW_ORIGINS,
    LIFECYCLE_MAX_UPLOAD_BYTES,
    LIFECYCLE_STORE_BACKEND,
)
from lifecycle_service.coordinator import LifecycleCoordinator, blob_key
from lifecycle_service.db import check_db_connection, close_pool, get_pool
from lifecycle_service.errors import (
    ConflictError,
    DuplicateIdError,
    LifecycleError,
    NotFoundError,
    StoreFailureError,
)
from lifecycle_service.logging_config import bind_request_id, generate_request_id, setup_logging
from lifecycle_service.models import (
    DocumentListResponse,
    DocumentOut,
    HealthResponse,
    StatusUpdateRequest,
)
from lifecycle_service.stores.blob_store import GcsBlobStore
from lifecycle_service.stores.document_store import PgDocumentStore
from lifecycle_service.stores.memory import InMemoryBlobStore, InMemoryDocumentStore
from lifecycle_service.stores.ports import BlobStore, MetadataStore
from lifecycle_service.types import STATUS_FILTER_ALL, DocumentDescriptor

logger = logging.getLogger(__name__)


async def _build_stores() -> tuple[MetadataStore, BlobStore]:
    if LIFECYCLE_STORE_BACKEND == "memory":
        logger.warning("Using in-memory stores; data is lost on restart")
        return InMemoryDocumentStore(), InMemoryBlobStore()
    await get_pool()
    return PgDocumentStore(), GcsBlobStore(client=storage.Client(), bucket=LIFECYCLE_BLOB_BUCKET)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build stores, coordinator and broadcaster; tear them down on shutdown."""
    setup_logging()
    require_auth_on_cloud_run()

    metadata, blobs = await _build_stores()
    broadcaster = ChangeBroadcaster()
    app.state.blobs = blobs
    app.state.coordinator = LifecycleCoordinator(metadata=metadata, blobs=blobs)
    app.state.broadcaster = broadcaster
    broadcaster.start()
    logger.info("Lifecycle service started (store backend: %s)", LIFECYCLE_STORE_BACKEND)
    yield
    await broadcaster.stop()
    if LIFECYCLE_STORE_BACKEND != "memory":
        await close_pool()
    logger.info("Lifecycle service stopped")


app = FastAPI(
    title="Document Lifecycle API",
    version="0.1.0",
    lifespan=lifespan,
)

# -- Rate limiting ------------------------------------------------------------

limiter = Limiter(key_func=get_remote_address, default_limits=["120/minute"])
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})


# -- Lifecycle errors ---------------------------------------------------------

_ERROR_STATUS: dict[type[LifecycleError], int] = {
    NotFoundError: 404,
    ConflictError: 409,
    DuplicateIdError: 409,
    StoreFailureError: 503,
}


@app.exception_handler(LifecycleError)
async def _lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    status_code = _ERROR_STATUS.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": exc.code})


if LIFECYCLE_CORS_ALLOW_CREDENTIALS and "*" in LIFECYCLE_CORS_ALLOW_ORIGINS:
    raise RuntimeError("Invalid CORS config: wildcard origin cannot be combined with credentials=true")

app.add_middleware(
    CORSMiddleware,
    allow_origins=LIFECYCLE_CORS_ALLOW_ORIGINS,
    allow_credentials=LIFECYCLE_CORS_ALLOW_CREDENTIALS,
    allow_methods=LIFECYCLE_CORS_ALLOW_METHODS,
    allow_headers=LIFECYCLE_CORS_ALLOW_HEADERS,
)


# -- Body size limit ----------------------------------------------------------

# Multipart framing adds a little on top of the file itself.
_MAX_BODY_BYTES = LIFECYCLE_MAX_UPLOAD_BYTES + 64 * 1024


@app.middleware("http")
async def body_size_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Reject requests whose declared body exceeds the upload limit."""
    content_length = request.headers.get("content-length")
    if content_length is not None and int(content_length) > _MAX_BODY_BYTES:
        return JSONResponse(status_code=413, content={"detail": "Request body too large"})
    return await call_next(request)


# -- Auth middleware ----------------------------------------------------------


@app.middleware("http")
async def auth_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Enforce authentication on all non-public paths."""
    if request.method == "OPTIONS" or is_public_path(request.url.path):
        return await call_next(request)

    try:
        request.state.identity = await get_identity(request)
    except HTTPException as exc:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
    except Exception as e:
        logger.warning("Auth middleware error: %s", e)
        return JSONResponse(status_code=401, content={"detail": "Authentication failed"})

    return await call_next(request)


# -- Request ID middleware ----------------------------------------------------


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    request_id = request.headers.get("x-request-id") or generate_request_id()
    request.state.request_id = request_id
    bind_request_id(request_id)
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


# -- Dependencies -------------------------------------------------------------


def _coordinator(request: Request) -> LifecycleCoordinator:
    return request.app.state.coordinator


def _broadcaster(request: Request) -> ChangeBroadcaster:
    return request.app.state.broadcaster


def _blobs(request: Request) -> BlobStore:
    return request.app.state.blobs


Coordinator = Annotated[LifecycleCoordinator, Depends(_coordinator)]
Broadcaster = Annotated[ChangeBroadcaster, Depends(_broadcaster)]
Blobs = Annotated[BlobStore, Depends(_blobs)]


# -- Health -------------------------------------------------------------------


@app.get("/liveness", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/readiness", response_model=HealthResponse)
async def readiness(broadcaster: Broadcaster) -> HealthResponse:
    if LIFECYCLE_STORE_BACKEND != "memory" and not await check_db_connection():
        raise HTTPException(status_code=503, detail="Database unavailable")
    return HealthResponse(status="ok", subscribers=broadcaster.subscriber_count)


# -- Documents ----------------------------------------------------------------


@app.post("/v1/documents", response_model=DocumentOut, status_code=201)
@limiter.limit("10/minute")
async def upload_document(
    request: Request,
    coordinator: Coordinator,
    broadcaster: Broadcaster,
    blobs: Blobs,
    file: Annotated[UploadFile, File(...)],
) -> DocumentOut:
    """Store the uploaded bytes, then record the document as ``pending``."""
    data = await file.read()
    if len(data) > LIFECYCLE_MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large")

    file_name = file.filename or ""
    if not file_name.strip():
        raise HTTPException(status_code=400, detail="File name must not be blank")
    mimetype = file.content_type or "application/octet-stream"

    # The blob key embeds the id, so the id is allocated before anything is written.
    document_id = uuid.uuid4().hex
    await blobs.put(blob_key(document_id, file_name), data, mimetype)

    record = await coordinator.create_document(
        DocumentDescriptor(file_name=file_name, size=len(data), mimetype=mimetype),
        document_id,
    )
    broadcaster.publish(record)
    return DocumentOut.from_record(record)


@app.get("/v1/documents", response_model=DocumentListResponse)
async def list_documents(
    coordinator: Coordinator,
    status: str = STATUS_FILTER_ALL,
    token: Annotated[str | None, Query()] = None,
) -> DocumentListResponse:
    try:
        page = await coordinator.fetch_all_documents(status, token)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return DocumentListResponse(
        documents=[DocumentOut.from_record(r) for r in page.records],
        next_token=page.next_token,
    )


@app.get("/v1/documents/{document_id}", response_model=DocumentOut)
async def get_document(document_id: str, coordinator: Coordinator) -> DocumentOut:
    return DocumentOut.from_record(await coordinator.fetch_document(document_id))


@app.patch("/v1/documents/{document_id}", response_model=DocumentOut)
async def update_document(
    document_id: str,
    body: StatusUpdateRequest,
    coordinator: Coordinator,
    broadcaster: Broadcaster,
) -> DocumentOut:
    record = await coordinator.update_document(document_id, body.status)
    broadcaster.publish(record)
    return DocumentOut.from_record(record)


@app.delete("/v1/documents/{document_id}", response_model=DocumentOut)
async def delete_document(
    document_id: str,
    coordinator: Coordinator,
    broadcaster: Broadcaster,
) -> DocumentOut:
    """Request deletion. Rejected with 409 while the document is ``running``."""
    record = await coordinator.delete_document(document_id)
    broadcaster.publish(record)
    return DocumentOut.from_record(record)


# -- Events -------------------------------------------------------------------


@app.get("/v1/events")
async def stream_events(broadcaster: Broadcaster) -> StreamingResponse:
    """Server-Sent Events: one ``document`` event per committed change, plus heartbeats."""

    async def event_stream() -> AsyncIterator[str]:
        subscription = broadcaster.subscribe()
        try:
            yield ": connected\n\n"
            async for event in subscription:
                yield format_sse(event)
        finally:
            broadcaster.unsubscribe(subscription)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
