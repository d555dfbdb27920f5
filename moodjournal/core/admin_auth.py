"""
Admin authentication for support and billing operations.

Supports hybrid authentication:
- Bearer JWT (preferred): the token's user must have role "admin"
- Legacy X-Admin-Key: shared secret

Auth modes (ADMIN_AUTH_MODE):
- "jwt": only bearer tokens
- "legacy": only X-Admin-Key
- "hybrid": both (default)

In prod (ENVIRONMENT=prod) the legacy key is refused unless the mode is
explicitly "legacy".
"""
import hashlib
import hmac
from typing import Optional, Literal
from dataclasses import dataclass
from fastapi import Request, HTTPException
from moodjournal.core.config import settings


@dataclass
class AdminActor:
    """Represents an authenticated admin actor."""
    actor_type: Literal["user", "legacy_key"]
    actor_id: str  # admin user ID or "legacy:<hash>"
    actor_email: Optional[str] = None
    auth_mechanism: Literal["jwt", "x_admin_key"] = "jwt"


def verify_legacy_key(request: Request) -> Optional[AdminActor]:
    """Return an actor for a matching X-Admin-Key header, else None."""
    expected_key = settings.ADMIN_KEY
    if not expected_key:
        return None

    header_key = request.headers.get("X-Admin-Key", "").strip()
    if not header_key or not hmac.compare_digest(header_key, expected_key):
        return None

    key_hash = hashlib.sha256(header_key.encode()).hexdigest()[:16]
    return AdminActor(
        actor_type="legacy_key",
        actor_id=f"legacy:{key_hash}",
        auth_mechanism="x_admin_key",
    )


def verify_admin_jwt(request: Request) -> Optional[AdminActor]:
    """Return an actor when the bearer token belongs to an admin user, else None."""
    from moodjournal.core.auth import bearer_token, decode_token
    from moodjournal.features.users.service import get_user

    token = bearer_token(request)
    if not token:
        return None

    try:
        claims = decode_token(token)
    except HTTPException:
        return None

    user = get_user(claims["sub"])
    if user is None or not user.is_admin:
        return None

    return AdminActor(
        actor_type="user",
        actor_id=user.user_id,
        actor_email=user.email,
        auth_mechanism="jwt",
    )


def get_admin_actor(request: Request) -> Optional[AdminActor]:
    """
    Attempt to authenticate admin from request.
    Returns AdminActor or None (does not raise).
    """
    mode = settings.ADMIN_AUTH_MODE.lower()
    env = settings.ENVIRONMENT.lower()

    if mode in {"jwt", "hybrid"}:
        actor = verify_admin_jwt(request)
        if actor:
            return actor

    if mode in {"legacy", "hybrid"}:
        if env == "prod" and mode != "legacy":
            return None
        return verify_legacy_key(request)

    return None


def require_admin(request: Request) -> AdminActor:
    """
    FastAPI dependency: Require admin authentication.

    Usage:
        @router.get("/v1/admin/endpoint")
        def admin_endpoint(actor: AdminActor = Depends(require_admin)):
            ...
    """
    actor = get_admin_actor(request)
    if actor:
        return actor

    if not settings.JWT_SECRET and not settings.ADMIN_KEY:
        raise HTTPException(
            status_code=503,
            detail="Admin authentication not configured. Set JWT_SECRET or ADMIN_KEY.",
        )

    raise HTTPException(
        status_code=403,
        detail=f"Admin access required (mode: {settings.ADMIN_AUTH_MODE.lower()})",
    )
