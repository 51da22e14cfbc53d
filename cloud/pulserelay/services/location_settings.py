"""
Location sharing settings: read with self-healing defaults, validated upsert.

Writes are insert-or-replace-all-fields keyed on user_id. Concurrent writers
resolve last-write-wins on updated_at: the conflict branch of the upsert only
applies when the stored row is not newer than the incoming write, so a
delayed request can never roll settings back.

Disabling sharing clears every stored sample for the user in the same
transaction as the settings write.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from pulserelay.config import get_settings
from pulserelay.models import LocationSharing, utcnow
from pulserelay.schemas import LocationMode, LocationSettingsSchema
from pulserelay.services.audit import ACTION_SETTINGS_UPDATED, record_audit
from pulserelay.services.samples import clear_samples

settings = get_settings()
logger = structlog.get_logger("location.settings")

# Columns compared for the audit diff, keyed by wire name
_AUDITED_FIELDS = {
    "enabled": "enabled",
    "locationMode": "location_mode",
    "accuracyThreshold": "accuracy_threshold",
    "updateInterval": "update_interval",
    "autoDisableAfter": "auto_disable_after",
    "fixedLatitude": "fixed_latitude",
    "fixedLongitude": "fixed_longitude",
    "fixedLocationName": "fixed_name",
}


class LocationValidationError(ValueError):
    """Settings rejected before anything is written."""

    def __init__(self, field_name: str, message: str):
        super().__init__(message)
        self.field = field_name
        self.message = message


@dataclass
class SettingsUpdateResult:
    """Outcome of an upsert."""
    settings: LocationSharing
    applied: bool                 # False when a newer write already won
    data_cleared: bool = False
    samples_deleted: int = 0
    diff: dict = field(default_factory=dict)


def default_values() -> dict:
    """Column values for a user who has never saved settings."""
    return {
        "enabled": False,
        "location_mode": LocationMode.GPS.value,
        "accuracy_threshold": settings.default_accuracy_threshold_m,
        "update_interval": settings.default_update_interval_s,
        "auto_disable_after": settings.default_auto_disable_after_s,
    }


def validate_fixed_location(update: LocationSettingsSchema) -> None:
    """
    An enabled fixed-mode share must carry a usable coordinate.

    Raises LocationValidationError; no other combination is range checked.
    """
    if not update.enabled or update.location_mode != LocationMode.FIXED:
        return

    lat = update.fixed_latitude
    lng = update.fixed_longitude
    if lat is None:
        raise LocationValidationError("fixedLatitude", "fixedLatitude is required for fixed location mode")
    if lng is None:
        raise LocationValidationError("fixedLongitude", "fixedLongitude is required for fixed location mode")
    if not -90 <= lat <= 90:
        raise LocationValidationError("fixedLatitude", "fixedLatitude must be between -90 and 90")
    if not -180 <= lng <= 180:
        raise LocationValidationError("fixedLongitude", "fixedLongitude must be between -180 and 180")


def _dialect_insert(db: AsyncSession):
    """INSERT construct with ON CONFLICT support for the bound dialect."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


async def _load(db: AsyncSession, user_id: str) -> Optional[LocationSharing]:
    result = await db.execute(
        select(LocationSharing)
        .where(LocationSharing.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_settings(db: AsyncSession, user_id: str) -> LocationSharing:
    """
    Return the user's settings, creating the default row on first read.

    Idempotent: concurrent first reads produce exactly one row.
    """
    row = await _load(db, user_id)
    if row is not None:
        return row

    now = utcnow()
    insert = _dialect_insert(db)
    stmt = insert(LocationSharing).values(
        user_id=user_id,
        created_at=now,
        updated_at=now,
        **default_values(),
    ).on_conflict_do_nothing(index_elements=["user_id"])
    await db.execute(stmt)

    row = await _load(db, user_id)
    logger.info("Created default location settings", user_id=user_id)
    return row


def _snapshot(row: Optional[LocationSharing]) -> dict:
    if row is None:
        return {}
    return {wire: getattr(row, column) for wire, column in _AUDITED_FIELDS.items()}


def _diff(before: dict, after: dict) -> dict:
    return {
        key: {"from": before.get(key), "to": value}
        for key, value in after.items()
        if before.get(key) != value
    }


async def update_settings(
    db: AsyncSession,
    user_id: str,
    update: LocationSettingsSchema,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SettingsUpdateResult:
    """
    Replace the user's settings with the supplied full record.

    Raises LocationValidationError before touching storage. The caller
    commits; on any storage error it must roll back so the previous
    settings stay intact.
    """
    validate_fixed_location(update)
    now = now or utcnow()

    previous = _snapshot(await _load(db, user_id))

    values = {
        "enabled": update.enabled,
        "location_mode": update.location_mode.value,
        "accuracy_threshold": update.accuracy_threshold,
        "update_interval": update.update_interval,
        "auto_disable_after": update.auto_disable_after,
        "fixed_latitude": update.fixed_latitude,
        "fixed_longitude": update.fixed_longitude,
        "fixed_name": update.fixed_location_name or None,
        "updated_at": now,
    }

    insert = _dialect_insert(db)
    stmt = insert(LocationSharing).values(user_id=user_id, created_at=now, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={column: stmt.excluded[column] for column in values},
        where=LocationSharing.updated_at <= stmt.excluded.updated_at,
    ).returning(LocationSharing.user_id)
    result = await db.execute(stmt)
    applied = result.scalar_one_or_none() is not None

    stored = await _load(db, user_id)
    current = _snapshot(stored)

    if not applied:
        logger.info(
            "Settings write superseded by a newer update",
            user_id=user_id,
            write_ts=now.isoformat(),
        )
        return SettingsUpdateResult(settings=stored, applied=False)

    data_cleared = False
    deleted = 0
    if not stored.enabled:
        deleted = await clear_samples(db, user_id)
        data_cleared = True
        logger.info("Location data cleared (sharing disabled)", user_id=user_id, samples_deleted=deleted)

    diff = _diff(previous, current)
    record_audit(
        db,
        user_id,
        ACTION_SETTINGS_UPDATED,
        {
            "changes": diff,
            "settings": current,
            "dataCleared": data_cleared,
        },
        ip=ip,
        user_agent=user_agent,
    )
    await db.flush()

    logger.debug(
        "Location settings updated",
        user_id=user_id,
        enabled=stored.enabled,
        location_mode=stored.location_mode,
        changed=sorted(diff),
    )

    return SettingsUpdateResult(
        settings=stored,
        applied=True,
        data_cleared=data_cleared,
        samples_deleted=deleted,
        diff=diff,
    )
