"""Environment-variable-driven configuration for the document lifecycle service.

All config comes from env vars; nothing is read from disk.
"""

from __future__ import annotations

import os


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_csv(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# -- Stores -------------------------------------------------------------------
LIFECYCLE_STORE_BACKEND: str = os.getenv("LIFECYCLE_STORE_BACKEND", "postgres").strip().lower()
LIFECYCLE_BLOB_BUCKET: str = os.getenv("LIFECYCLE_BLOB_BUCKET", "")
LIFECYCLE_RETENTION_PREFIX: str = os.getenv("LIFECYCLE_RETENTION_PREFIX", "deleted/")
LIFECYCLE_PAGE_SIZE: int = int(os.getenv("LIFECYCLE_PAGE_SIZE", "50"))

# -- Lifecycle ----------------------------------------------------------------
LIFECYCLE_PURGE_AFTER_DAYS: int = int(os.getenv("LIFECYCLE_PURGE_AFTER_DAYS", "90"))
LIFECYCLE_MAX_UPLOAD_BYTES: int = int(os.getenv("LIFECYCLE_MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))

# -- Broadcaster --------------------------------------------------------------
LIFECYCLE_HEARTBEAT_SECONDS: float = float(os.getenv("LIFECYCLE_HEARTBEAT_SECONDS", "15"))
LIFECYCLE_SUBSCRIBER_QUEUE_SIZE: int = int(os.getenv("LIFECYCLE_SUBSCRIBER_QUEUE_SIZE", "100"))

# -- Auth ---------------------------------------------------------------------
LIFECYCLE_API_TOKEN: str | None = os.getenv("LIFECYCLE_API_TOKEN")
LIFECYCLE_OIDC_AUDIENCE: str | None = os.getenv("LIFECYCLE_OIDC_AUDIENCE")
LIFECYCLE_ALLOWED_ISSUERS: set[str] = set(
    _env_csv("LIFECYCLE_ALLOWED_ISSUERS", "https://accounts.google.com,accounts.google.com")
)

# -- CORS ---------------------------------------------------------------------
LIFECYCLE_CORS_ALLOW_ORIGINS: list[str] = _env_csv(
    "LIFECYCLE_CORS_ALLOW_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
)
LIFECYCLE_CORS_ALLOW_METHODS: list[str] = _env_csv(
    "LIFECYCLE_CORS_ALLOW_METHODS",
    "GET,POST,PATCH,DELETE,OPTIONS",
)
LIFECYCLE_CORS_ALLOW_HEADERS: list[str] = _env_csv(
    "LIFECYCLE_CORS_ALLOW_HEADERS",
    "Authorization,Content-Type,X-Api-Token",
)
LIFECYCLE_CORS_ALLOW_CREDENTIALS: bool = _env_bool("LIFECYCLE_CORS_ALLOW_CREDENTIALS", False)

# -- Server -------------------------------------------------------------------
IS_CLOUD_RUN: bool = bool(os.getenv("K_SERVICE"))
