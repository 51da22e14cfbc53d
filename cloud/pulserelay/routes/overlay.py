"""
Overlay API routes.

Read-only views for embeddable stream overlays, authenticated by the
owner's overlay token instead of a user session.
"""
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pulserelay.database import get_session
from pulserelay.rate_limit import PUBLIC_LIMIT, limiter
from pulserelay.routes.location import NO_STORE, storage_failure
from pulserelay.schemas import CurrentLocationResponse
from pulserelay.services.auth import AuthInfo, get_overlay_viewer
from pulserelay.services.location_query import get_current_location

router = APIRouter(prefix="/api/overlay", tags=["overlay"])


@router.get("/location/current", response_model=CurrentLocationResponse)
@limiter.limit(PUBLIC_LIMIT)
async def overlay_current_location(
    request: Request,
    response: Response,
    viewer: AuthInfo = Depends(get_overlay_viewer),
    db: AsyncSession = Depends(get_session),
):
    """Same answer the owner's dashboard gets."""
    response.headers["Cache-Control"] = NO_STORE
    try:
        return await get_current_location(db, viewer.user_id)
    except SQLAlchemyError:
        raise await storage_failure(db, request, viewer, "Failed to get current location")
