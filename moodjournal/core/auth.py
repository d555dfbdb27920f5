"""
Auth utilities for the Mood Journal API.

Validates HS256 bearer JWTs and extracts user_id from the ``sub`` claim.
Falls back to the X-User-Id header when ALLOW_USER_ID_HEADER is on outside
production (dev/tests).
Every authenticated caller gets an app_users row on first contact.
"""
from fastapi import Header, HTTPException, Request
from typing import Any, Dict, Optional
import jwt
import logging

from moodjournal.core.config import settings
from moodjournal.models.user import User

logger = logging.getLogger("moodjournal.auth")


def decode_token(token: str) -> Dict[str, Any]:
    """
    Verify a bearer JWT and return its claims.

    Raises:
        HTTPException 401: Invalid, expired, or unverifiable token
    """
    if not settings.JWT_SECRET:
        raise HTTPException(status_code=401, detail="Token auth not configured")

    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    if not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    return claims


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Dev/test user ID"),
) -> str:
    """
    Extract current user ID from request context.

    Priority:
    1. Bearer JWT from Authorization header
    2. X-User-Id header (when ALLOW_USER_ID_HEADER, never in production)
    3. Raise 401 Unauthorized
    """
    token = bearer_token(request)
    if token:
        claims = decode_token(token)
        request.state.token_claims = claims
        return claims["sub"]

    if x_user_id and settings.ALLOW_USER_ID_HEADER and not settings.is_production():
        return x_user_id

    raise HTTPException(
        status_code=401,
        detail="Missing Authorization (Bearer JWT) or X-User-Id header",
    )


def get_current_user(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Dev/test user ID"),
) -> User:
    """FastAPI dependency: authenticated user, created on first contact."""
    from moodjournal.features.users.service import get_or_create_user

    user_id = get_current_user_id(request, x_user_id)
    claims = getattr(request.state, "token_claims", None) or {}
    return get_or_create_user(
        user_id,
        email=claims.get("email"),
        display_name=claims.get("name"),
    )
