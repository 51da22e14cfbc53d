"""
Location sharing API routes (owner access).

Settings sync, sample ingest, current location, history and data wipe.
Routes own the transaction: services flush, routes commit or roll back.
"""
import json
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pulserelay.config import get_settings
from pulserelay.database import get_session
from pulserelay.errors import field_errors, validation_error
from pulserelay.rate_limit import MOBILE_LIMIT, limiter
from pulserelay.schemas import (
    CurrentLocationResponse,
    HistoryResponse,
    LocationSettingsSchema,
    LocationUpdate,
    MessageResponse,
    SettingsResponse,
    SettingsUpdateResponse,
)
from pulserelay.services import location_settings, samples
from pulserelay.services.audit import ACTION_DATA_CLEARED, record_audit
from pulserelay.services.auth import AuthInfo, get_owner, get_request_context
from pulserelay.services.location_query import get_current_location, to_sample_point

settings = get_settings()
logger = structlog.get_logger("routes.location")
router = APIRouter(prefix="/api/location", tags=["location"])

NO_STORE = "no-store, no-cache, must-revalidate"


async def storage_failure(
    db: AsyncSession,
    request: Request,
    auth: AuthInfo,
    message: str,
) -> HTTPException:
    """Roll back, log with request context and build the 500."""
    await db.rollback()
    ctx = get_request_context(request)
    logger.exception(
        message,
        user_id=auth.user_id,
        ip=ctx.ip,
        user_agent=ctx.user_agent,
        path=request.url.path,
    )
    return HTTPException(status_code=500, detail=message)


@router.get("/settings", response_model=SettingsResponse)
@limiter.limit(MOBILE_LIMIT)
async def read_settings(
    request: Request,
    auth: AuthInfo = Depends(get_owner),
    db: AsyncSession = Depends(get_session),
):
    """Current settings; a default row is created on first read."""
    try:
        row = await location_settings.get_settings(db, auth.user_id)
        await db.commit()
    except SQLAlchemyError:
        raise await storage_failure(db, request, auth, "Failed to get location settings")

    return SettingsResponse(settings=LocationSettingsSchema.from_row(row))


@router.put("/settings", response_model=SettingsUpdateResponse)
@limiter.limit(MOBILE_LIMIT)
async def write_settings(
    request: Request,
    data: LocationSettingsSchema,
    auth: AuthInfo = Depends(get_owner),
    db: AsyncSession = Depends(get_session),
):
    """
    Replace settings with the full record supplied.

    Disabling clears stored samples in the same transaction. The response
    echoes what is stored, which differs from the request when a newer
    write already won.
    """
    ctx = get_request_context(request)
    try:
        result = await location_settings.update_settings(
            db,
            auth.user_id,
            data,
            ip=ctx.ip,
            user_agent=ctx.user_agent,
        )
        await db.commit()
    except location_settings.LocationValidationError as e:
        await db.rollback()
        raise validation_error(e.message, [{"field": e.field, "message": e.message}])
    except SQLAlchemyError:
        raise await storage_failure(db, request, auth, "Failed to update location settings")

    if result.applied:
        message = "Location settings updated successfully"
        logger.info(
            "Location settings saved",
            user_id=auth.user_id,
            enabled=result.settings.enabled,
            location_mode=result.settings.location_mode,
            data_cleared=result.data_cleared,
        )
    else:
        message = "Location settings unchanged: a newer update was already saved"

    return SettingsUpdateResponse(
        message=message,
        settings=LocationSettingsSchema.from_row(result.settings),
    )


@router.post("/update", response_model=MessageResponse)
@limiter.limit(MOBILE_LIMIT)
async def submit_location(
    request: Request,
    auth: AuthInfo = Depends(get_owner),
    db: AsyncSession = Depends(get_session),
):
    """
    Record one location fix.

    The sharing gate runs before the body is looked at: a disabled user
    gets 403 whatever they send.
    """
    ctx = get_request_context(request)

    try:
        sharing = await samples.require_sharing_enabled(db, auth.user_id)
    except samples.SharingDisabledError:
        logger.warning(
            "Location update rejected - sharing disabled",
            user_id=auth.user_id,
            ip=ctx.ip,
        )
        raise HTTPException(status_code=403, detail="Location sharing is not enabled")
    except SQLAlchemyError:
        raise await storage_failure(db, request, auth, "Failed to update location")

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise validation_error("Request body must be valid JSON")

    if isinstance(payload, dict) and "bearing" in payload:
        logger.warning("Deprecated field 'bearing' ignored, use 'heading'", user_id=auth.user_id)

    try:
        update = LocationUpdate.model_validate(payload)
    except ValidationError as e:
        raise validation_error("Invalid location data", field_errors(e.errors()))

    logger.debug(
        "Location update received",
        user_id=auth.user_id,
        latitude=update.latitude,
        longitude=update.longitude,
        accuracy=update.accuracy,
        user_agent=ctx.user_agent,
        ip=ctx.ip,
    )

    try:
        await samples.record_sample(db, sharing, update)
        await db.commit()
    except SQLAlchemyError:
        raise await storage_failure(db, request, auth, "Failed to update location")

    return MessageResponse(message="Location updated successfully")


@router.get("/current", response_model=CurrentLocationResponse)
@limiter.limit(MOBILE_LIMIT)
async def read_current_location(
    request: Request,
    response: Response,
    auth: AuthInfo = Depends(get_owner),
    db: AsyncSession = Depends(get_session),
):
    """Latest location for the owner's dashboard. Never cached."""
    response.headers["Cache-Control"] = NO_STORE
    try:
        return await get_current_location(db, auth.user_id)
    except SQLAlchemyError:
        raise await storage_failure(db, request, auth, "Failed to get current location")


@router.get("/history", response_model=HistoryResponse)
@limiter.limit(MOBILE_LIMIT)
async def read_history(
    request: Request,
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    auth: AuthInfo = Depends(get_owner),
    db: AsyncSession = Depends(get_session),
):
    """Stored samples, newest first."""
    if limit is None or limit < 1:
        limit = settings.history_default_limit
    limit = min(limit, settings.history_max_limit)

    try:
        sharing = await samples.require_sharing_enabled(db, auth.user_id)
        rows = await samples.list_samples(db, sharing.user_id, limit=limit, offset=offset)
    except samples.SharingDisabledError:
        return HistoryResponse(enabled=False, history=[])
    except SQLAlchemyError:
        raise await storage_failure(db, request, auth, "Failed to get location history")

    return HistoryResponse(enabled=True, history=[to_sample_point(row) for row in rows])


@router.delete("/data", response_model=MessageResponse)
@limiter.limit(MOBILE_LIMIT)
async def clear_location_data(
    request: Request,
    auth: AuthInfo = Depends(get_owner),
    db: AsyncSession = Depends(get_session),
):
    """Delete every stored sample for the owner. Settings are untouched."""
    ctx = get_request_context(request)
    try:
        deleted = await samples.clear_samples(db, auth.user_id)
        record_audit(
            db,
            auth.user_id,
            ACTION_DATA_CLEARED,
            {"samplesDeleted": deleted},
            ip=ctx.ip,
            user_agent=ctx.user_agent,
        )
        await db.commit()
    except SQLAlchemyError:
        raise await storage_failure(db, request, auth, "Failed to clear location data")

    logger.info("Location data cleared", user_id=auth.user_id, samples_deleted=deleted)
    return MessageResponse(message="Location data cleared successfully")
