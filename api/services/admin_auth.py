"""
Shared admin key verification.

Used by: duplicate scrub preview and execute.
"""

import logging
import os
import secrets

from fastapi import Header, HTTPException

logger = logging.getLogger(__name__)


def _extract_bearer_token(authorization: str | None) -> str:
    """Extract token from Authorization: Bearer <token> header."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authorization header must use Bearer scheme")
    return authorization[7:]  # Remove "Bearer " prefix


def require_admin(
    authorization: str | None = Header(None, description="Bearer token for admin authentication"),
) -> None:
    """
    FastAPI dependency gating admin-only endpoints.

    The admin key is read from the ADMIN_KEY environment variable on every
    request; when it is unset the endpoints are disabled (503).
    """
    admin_key = _extract_bearer_token(authorization)
    configured_admin_key = os.getenv("ADMIN_KEY", "")
    if not configured_admin_key:
        logger.warning("ADMIN_KEY not configured - admin endpoints disabled")
        raise HTTPException(status_code=503, detail="Admin access not configured")

    if not secrets.compare_digest(admin_key, configured_admin_key):
        logger.warning("Invalid admin key presented")
        raise HTTPException(status_code=403, detail="Invalid admin key")
