"""
Location sample store.

Samples are append-only. The only ways they leave the table are the
retention prune that runs after every insert and the bulk clear when a user
disables sharing or wipes their data.
"""
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pulserelay.config import get_settings
from pulserelay.models import LocationSample, LocationSharing, utcnow
from pulserelay.schemas import LocationUpdate

settings = get_settings()
logger = structlog.get_logger("location.samples")


class SharingDisabledError(Exception):
    """Sample submitted while the user's sharing is off (or never configured)."""

    def __init__(self, user_id: str):
        super().__init__("Location sharing is not enabled")
        self.user_id = user_id


async def require_sharing_enabled(db: AsyncSession, user_id: str) -> LocationSharing:
    """Hard gate for the update path. Raises SharingDisabledError."""
    result = await db.execute(
        select(LocationSharing).where(LocationSharing.user_id == user_id)
    )
    sharing = result.scalar_one_or_none()
    if sharing is None or not sharing.enabled:
        raise SharingDisabledError(user_id)
    return sharing


async def record_sample(
    db: AsyncSession,
    sharing: LocationSharing,
    update: LocationUpdate,
    now: Optional[datetime] = None,
) -> LocationSample:
    """
    Append a sample for an enabled share and prune expired ones.

    The caller passes the row returned by require_sharing_enabled; accuracy
    above the user's threshold is logged, never rejected.
    """
    now = now or utcnow()

    if update.accuracy is not None and update.accuracy > sharing.accuracy_threshold:
        logger.warning(
            "Location accuracy exceeds threshold",
            user_id=sharing.user_id,
            accuracy_m=update.accuracy,
            threshold_m=sharing.accuracy_threshold,
        )

    sample = LocationSample(
        user_id=sharing.user_id,
        latitude=update.latitude,
        longitude=update.longitude,
        accuracy=update.accuracy,
        altitude=update.altitude,
        altitude_accuracy=update.altitude_accuracy,
        heading=update.heading,
        speed=update.speed,
        gps_quality=update.gps_quality,
        gsm_signal=update.gsm_signal,
        created_at=now,
    )
    db.add(sample)
    await db.flush()

    pruned = await prune_samples(db, sharing.user_id, now)
    if pruned:
        logger.debug("Pruned expired samples", user_id=sharing.user_id, count=pruned)

    return sample


async def prune_samples(db: AsyncSession, user_id: str, now: datetime) -> int:
    """Delete the user's samples older than the retention window."""
    cutoff = now - timedelta(hours=settings.sample_retention_hours)
    result = await db.execute(
        delete(LocationSample).where(
            LocationSample.user_id == user_id,
            LocationSample.created_at < cutoff,
        ).execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def clear_samples(db: AsyncSession, user_id: str) -> int:
    """Delete every sample the user has."""
    result = await db.execute(
        delete(LocationSample).where(LocationSample.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def latest_sample(db: AsyncSession, user_id: str) -> Optional[LocationSample]:
    """Most recent sample for the user, if any."""
    result = await db.execute(
        select(LocationSample)
        .where(LocationSample.user_id == user_id)
        .order_by(LocationSample.created_at.desc(), LocationSample.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_samples(
    db: AsyncSession,
    user_id: str,
    limit: int,
    offset: int = 0,
) -> list[LocationSample]:
    """Samples newest first."""
    result = await db.execute(
        select(LocationSample)
        .where(LocationSample.user_id == user_id)
        .order_by(LocationSample.created_at.desc(), LocationSample.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def count_samples(db: AsyncSession, user_id: str) -> int:
    """Number of stored samples for the user."""
    result = await db.execute(
        select(func.count()).select_from(LocationSample).where(LocationSample.user_id == user_id)
    )
    return result.scalar_one()
