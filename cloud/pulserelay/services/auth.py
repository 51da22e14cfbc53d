"""
Authentication for the location API.

Two kinds of caller:
- Owner: the user themself, via a Bearer JWT (web session or mobile API token)
- Overlay: an embeddable read-only view, via the user's overlay token

There is no users table here; identity comes from the JWT claims issued
by the account service (or by POST /api/token/mobile).
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Header, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pulserelay import redis_client
from pulserelay.config import get_settings
from pulserelay.database import get_session
from pulserelay.models import OverlayToken, utcnow

settings = get_settings()
logger = structlog.get_logger("auth")

TOKEN_TYPE_SESSION = "session"
TOKEN_TYPE_MOBILE = "mobile_api"
OWNER_TOKEN_TYPES = (TOKEN_TYPE_SESSION, TOKEN_TYPE_MOBILE)


class Scope(str, Enum):
    OWNER = "owner"
    OVERLAY = "overlay"


@dataclass
class AuthInfo:
    """Authenticated caller."""
    user_id: str
    username: Optional[str] = None
    scope: Scope = Scope.OWNER
    token_type: Optional[str] = None


@dataclass
class RequestContext:
    """Client details recorded in the audit trail."""
    ip: Optional[str]
    user_agent: Optional[str]


def create_access_token(
    user_id: str,
    username: Optional[str],
    token_type: str = TOKEN_TYPE_SESSION,
    expires_delta: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> str:
    """Issue a signed JWT for the user."""
    now = now or utcnow()
    payload = {
        "sub": user_id,
        "username": username,
        "type": token_type,
        "iat": now,
    }
    if expires_delta is not None:
        payload["exp"] = now + expires_delta
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[AuthInfo]:
    """Return AuthInfo for a valid owner JWT, None otherwise."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.debug("Expired access token")
        return None
    except jwt.InvalidTokenError:
        return None

    user_id = payload.get("sub")
    token_type = payload.get("type")
    if not user_id or token_type not in OWNER_TOKEN_TYPES:
        return None

    return AuthInfo(
        user_id=str(user_id),
        username=payload.get("username"),
        scope=Scope.OWNER,
        token_type=token_type,
    )


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


async def get_owner(
    authorization: Optional[str] = Header(None),
) -> AuthInfo:
    """
    FastAPI dependency: the authenticated owner.

    Raises 401 when the Bearer token is missing or invalid.
    """
    token = _bearer(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    auth = decode_access_token(token)
    if auth is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return auth


def generate_overlay_token() -> str:
    """Random URL-safe overlay token."""
    return secrets.token_hex(32)


async def lookup_overlay_token(token: str, db: AsyncSession) -> Optional[AuthInfo]:
    """
    Resolve an overlay token to its owner.
    First checks Redis cache, falls back to database.
    """
    token_info = await redis_client.get_overlay_token_info(token)
    if token_info:
        return AuthInfo(
            user_id=token_info["user_id"],
            username=token_info.get("username"),
            scope=Scope.OVERLAY,
        )

    result = await db.execute(select(OverlayToken).where(OverlayToken.token == token))
    row = result.scalar_one_or_none()
    if row is None:
        return None

    row.last_used_at = utcnow()
    await db.commit()

    await redis_client.cache_overlay_token(token, row.user_id, row.username)

    return AuthInfo(user_id=row.user_id, username=row.username, scope=Scope.OVERLAY)


async def get_overlay_viewer(
    token: Optional[str] = Query(None),
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_session),
) -> AuthInfo:
    """
    FastAPI dependency: overlay access by ?token= or Bearer overlay token.

    Raises 401 when no token is given or it matches nothing.
    """
    overlay_token = token or _bearer(authorization)
    if not overlay_token:
        raise HTTPException(status_code=401, detail="Overlay token required")

    auth = await lookup_overlay_token(overlay_token, db)
    if auth is None:
        raise HTTPException(status_code=401, detail="Invalid overlay token")
    return auth


def get_request_context(request: Request) -> RequestContext:
    """Client IP (honouring X-Forwarded-For) and user agent."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    return RequestContext(ip=ip, user_agent=request.headers.get("User-Agent"))
