"""
Token management routes.

Mobile API tokens are long-lived JWTs the phone app stores. Overlay tokens
are opaque, one per user, and never expire; rotating one invalidates the
previous value immediately.
"""
from datetime import timedelta

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pulserelay import redis_client
from pulserelay.config import get_settings
from pulserelay.database import get_session
from pulserelay.models import OverlayToken, utcnow
from pulserelay.rate_limit import PUBLIC_LIMIT, limiter
from pulserelay.schemas import MessageResponse, MobileTokenResponse, OverlayTokenResponse
from pulserelay.services.auth import (
    TOKEN_TYPE_MOBILE,
    AuthInfo,
    create_access_token,
    generate_overlay_token,
    get_owner,
)

settings = get_settings()
logger = structlog.get_logger("routes.tokens")
router = APIRouter(prefix="/api/token", tags=["tokens"])


@router.post("/mobile", response_model=MobileTokenResponse)
@limiter.limit(PUBLIC_LIMIT)
async def issue_mobile_token(
    request: Request,
    auth: AuthInfo = Depends(get_owner),
):
    """Issue a mobile API token for the signed-in user."""
    now = utcnow()
    lifetime = timedelta(days=settings.mobile_token_days)
    token = create_access_token(
        auth.user_id,
        auth.username,
        token_type=TOKEN_TYPE_MOBILE,
        expires_delta=lifetime,
        now=now,
    )
    logger.info("Generated mobile API token", user_id=auth.user_id)
    return MobileTokenResponse(token=token, created_at=now, expires_at=now + lifetime)


async def _current_overlay_token(db: AsyncSession, user_id: str):
    result = await db.execute(select(OverlayToken).where(OverlayToken.user_id == user_id))
    return result.scalar_one_or_none()


@router.get("/overlay", response_model=OverlayTokenResponse)
@limiter.limit(PUBLIC_LIMIT)
async def read_overlay_token(
    request: Request,
    auth: AuthInfo = Depends(get_owner),
    db: AsyncSession = Depends(get_session),
):
    """The user's overlay token, or token=null if none exists."""
    row = await _current_overlay_token(db, auth.user_id)
    if row is None:
        return OverlayTokenResponse(token=None)
    return OverlayTokenResponse(
        token=row.token,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
    )


@router.post("/overlay", response_model=OverlayTokenResponse)
@limiter.limit(PUBLIC_LIMIT)
async def rotate_overlay_token(
    request: Request,
    auth: AuthInfo = Depends(get_owner),
    db: AsyncSession = Depends(get_session),
):
    """Generate a new overlay token, replacing any existing one."""
    previous = await _current_overlay_token(db, auth.user_id)
    previous_token = previous.token if previous else None

    now = utcnow()
    token = generate_overlay_token()
    try:
        if previous is None:
            db.add(OverlayToken(
                user_id=auth.user_id,
                username=auth.username,
                token=token,
                created_at=now,
            ))
        else:
            previous.token = token
            previous.username = auth.username
            previous.created_at = now
            previous.last_used_at = None
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to generate overlay token", user_id=auth.user_id)
        raise HTTPException(status_code=500, detail="Failed to generate overlay token")

    if previous_token:
        await redis_client.invalidate_overlay_token(previous_token)

    logger.info("Generated overlay token", user_id=auth.user_id, rotated=previous_token is not None)
    return OverlayTokenResponse(token=token, created_at=now)


@router.delete("/overlay", response_model=MessageResponse)
@limiter.limit(PUBLIC_LIMIT)
async def revoke_overlay_token(
    request: Request,
    auth: AuthInfo = Depends(get_owner),
    db: AsyncSession = Depends(get_session),
):
    """Revoke the overlay token; overlays using it stop working at once."""
    row = await _current_overlay_token(db, auth.user_id)
    if row is None:
        return MessageResponse(message="No overlay token to revoke")

    token = row.token
    try:
        await db.delete(row)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to revoke overlay token", user_id=auth.user_id)
        raise HTTPException(status_code=500, detail="Failed to revoke overlay token")

    await redis_client.invalidate_overlay_token(token)
    logger.info("Revoked overlay token", user_id=auth.user_id)
    return MessageResponse(message="Overlay token revoked")
