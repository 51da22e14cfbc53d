"""
Current location read path.

Single implementation behind both the owner dashboard endpoint and the
overlay endpoint; the routes differ only in how they authenticate.
"""
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pulserelay.models import LocationSample, LocationSharing, ensure_utc, utcnow
from pulserelay.schemas import (
    CurrentLocationPoint,
    CurrentLocationResponse,
    LocationMode,
    SamplePoint,
)
from pulserelay.services.samples import latest_sample
from pulserelay.services.staleness import evaluate_staleness

logger = structlog.get_logger("location.query")


def sample_fields(sample: LocationSample) -> dict:
    """Common projection of a stored sample."""
    return {
        "latitude": sample.latitude,
        "longitude": sample.longitude,
        "accuracy": sample.accuracy,
        "altitude": sample.altitude,
        "altitude_accuracy": sample.altitude_accuracy,
        "heading": sample.heading,
        "speed": sample.speed,
        "gps_quality": sample.gps_quality,
        "gsm_signal": sample.gsm_signal,
        "timestamp": ensure_utc(sample.created_at),
    }


def to_sample_point(sample: LocationSample) -> SamplePoint:
    return SamplePoint(**sample_fields(sample))


async def get_current_location(
    db: AsyncSession,
    user_id: str,
    now: Optional[datetime] = None,
) -> CurrentLocationResponse:
    """
    What a consumer should display right now.

    Disabled or unconfigured shares read as disabled. A stale GPS share
    reads as enabled with no location. Otherwise the latest sample is
    returned, whatever the mode, tagged with its source.
    """
    now = now or utcnow()

    result = await db.execute(
        select(LocationSharing).where(LocationSharing.user_id == user_id)
    )
    sharing = result.scalar_one_or_none()
    if sharing is None or not sharing.enabled:
        return CurrentLocationResponse(enabled=False, location=None)

    mode = LocationMode(sharing.location_mode or LocationMode.GPS.value)
    sample = await latest_sample(db, user_id)

    freshness = evaluate_staleness(
        sample.created_at if sample else None,
        sharing.auto_disable_after,
        mode,
        now,
    )
    if freshness.stale:
        logger.info(
            "Location data stale",
            user_id=user_id,
            age_s=round(freshness.age_s or 0),
            threshold_s=sharing.auto_disable_after,
        )
        return CurrentLocationResponse(
            enabled=True,
            location=None,
            stale=True,
            reason=freshness.reason,
        )

    if sample is None:
        return CurrentLocationResponse(enabled=True, location=None)

    return CurrentLocationResponse(
        enabled=True,
        location=CurrentLocationPoint(
            **sample_fields(sample),
            source=mode,
            name=sharing.fixed_name if mode == LocationMode.FIXED else None,
        ),
    )
