"""Authentication for the lifecycle service.

Two modes:
1. Cloud Run OIDC: verifies Google identity tokens from the Authorization header.
2. Shared API token: ``x-api-token`` header (or bearer / ``?token=``) for
   local dev and internal callers; ignored when running on Cloud Run.

The ``?token=`` fallback exists for EventSource clients, which cannot set
request headers on the ``/v1/events`` stream.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass

from fastapi import HTTPException, Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from lifecycle_service.config import (
    IS_CLOUD_RUN,
    LIFECYCLE_ALLOWED_ISSUERS,
    LIFECYCLE_API_TOKEN,
    LIFECYCLE_OIDC_AUDIENCE,
)

logger = logging.getLogger(__name__)

_transport = google_requests.Request()

_PUBLIC_PATHS = {"/liveness", "/readiness", "/docs", "/openapi.json"}


@dataclass
class Identity:
    principal: str  # email, sub claim, or "api-token"


async def get_identity(request: Request) -> Identity:
    """Resolve the caller, raising HTTPException 401 when no valid credential is present."""
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing authorization token")

    if not IS_CLOUD_RUN and LIFECYCLE_API_TOKEN and hmac.compare_digest(token, LIFECYCLE_API_TOKEN):
        return Identity(principal="api-token")

    try:
        claims = id_token.verify_token(token, _transport, audience=LIFECYCLE_OIDC_AUDIENCE)
        issuer = str(claims.get("iss", "")).strip()
        if issuer not in LIFECYCLE_ALLOWED_ISSUERS:
            raise HTTPException(status_code=401, detail="Invalid token issuer")

        principal = claims.get("email") or claims.get("sub") or ""
        if not principal:
            raise HTTPException(status_code=401, detail="Token missing email and sub claims")
        return Identity(principal=principal)
    except HTTPException:
        raise
    except Exception as e:
        logger.warning("Token verification failed: %s", e)
        raise HTTPException(status_code=401, detail="Invalid token") from e


def _extract_token(request: Request) -> str | None:
    api_token = request.headers.get("x-api-token", "").strip()
    if api_token:
        return api_token

    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()

    token = request.query_params.get("token")
    if token:
        return token

    return None


def is_public_path(path: str) -> bool:
    return path in _PUBLIC_PATHS or path.startswith("/docs")


def require_auth_on_cloud_run() -> None:
    """Startup check: the shared token must not be the only credential on Cloud Run."""
    if IS_CLOUD_RUN and LIFECYCLE_API_TOKEN:
        logger.warning(
            "LIFECYCLE_API_TOKEN is set on Cloud Run and will be ignored. "
            "Use OIDC tokens for authentication in production."
        )
    if IS_CLOUD_RUN and not LIFECYCLE_OIDC_AUDIENCE:
        raise RuntimeError("LIFECYCLE_OIDC_AUDIENCE must be set on Cloud Run")
