"""Shared-key check for intra-cluster callers (booking system)"""
import hmac
import logging

from fastapi import HTTPException, Request, status

from courtside.config import get_settings

logger = logging.getLogger(__name__)


async def require_internal_key(request: Request) -> str:
    """FastAPI dependency that checks the X-Internal-Key header.

    An empty ``internal_api_key`` setting leaves the endpoint open.
    """
    expected = get_settings().internal_api_key
    if not expected:
        return "__open__"

    internal_key = request.headers.get("X-Internal-Key") or ""
    if internal_key and hmac.compare_digest(internal_key, expected):
        return "__internal__"

    logger.warning(f"Rejected internal request from {request.client.host if request.client else 'unknown'}")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing internal API key",
    )
