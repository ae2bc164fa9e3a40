"""
Internal Service Authentication

POST /api/reconciliation/match is called by other services (ledger sync,
bank feed importers), never by end users, so it is guarded by a shared
API key rather than user sessions.

Keys are read from INTERNAL_API_KEY and the comma-separated
INTERNAL_API_KEYS; during a rotation both old and new keys are listed.

Callers send:
    X-Internal-Api-Key: <api_key>
    X-Service-Name: <service_name>   (optional, used in logs)
"""

import os
import secrets
import logging
from typing import Optional, Set
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Request, HTTPException, status, Depends
from fastapi.security import APIKeyHeader

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-Internal-Api-Key"
SERVICE_NAME_HEADER = "X-Service-Name"


@dataclass
class InternalService:
    """The calling service, as named in X-Service-Name"""
    name: str
    key_suffix: str


@lru_cache(maxsize=1)
def _get_valid_api_keys() -> Set[str]:
    """
    Accepted keys from the environment.

    Cached; call _get_valid_api_keys.cache_clear() after changing the
    environment.
    """
    candidates = [os.environ.get("INTERNAL_API_KEY", "")]
    candidates += os.environ.get("INTERNAL_API_KEYS", "").split(",")
    keys = {key.strip() for key in candidates if key and key.strip()}

    if not keys:
        logger.warning("No internal API keys configured - match requests will be rejected")

    return keys


def is_internal_auth_configured() -> bool:
    return bool(_get_valid_api_keys())


def validate_internal_key(api_key: Optional[str]) -> bool:
    """Constant-time check of api_key against every accepted key."""
    if not api_key:
        return False
    return any(
        secrets.compare_digest(api_key.encode(), valid_key.encode())
        for valid_key in _get_valid_api_keys()
    )


api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "ApiKey"}
    )


async def require_internal_service(
    request: Request,
    api_key: Optional[str] = Depends(api_key_header)
) -> InternalService:
    """
    Dependency for the match endpoint.

    Raises:
        HTTPException: 401 if the key is missing or not accepted
    """
    service_name = request.headers.get(SERVICE_NAME_HEADER, "unknown")

    if not api_key:
        logger.warning(f"Match request without API key from service: {service_name}")
        raise _unauthorized("Missing internal API key")

    if not validate_internal_key(api_key):
        logger.warning(f"Rejected API key ending ...{api_key[-4:]} from service: {service_name}")
        raise _unauthorized("Invalid internal API key")

    return InternalService(name=service_name, key_suffix=api_key[-4:])
