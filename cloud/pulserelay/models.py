"""
SQLAlchemy ORM models for PulseRelay location sharing.
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime,
    Index, JSON, Text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; all stored times are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LocationSharing(Base):
    """Per-user location sharing settings. Source of truth for intent."""
    __tablename__ = "location_sharing"

    user_id = Column(String, primary_key=True)
    enabled = Column(Boolean, nullable=False, default=False)
    location_mode = Column(String, nullable=False, default="gps")  # gps, fixed
    accuracy_threshold = Column(Integer, nullable=False, default=5000)  # meters
    update_interval = Column(Integer, nullable=False, default=30)  # seconds
    auto_disable_after = Column(Integer, nullable=False, default=3600)  # seconds, 0 = never stale
    fixed_latitude = Column(Float)
    fixed_longitude = Column(Float)
    fixed_name = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class LocationSample(Base):
    """
    One reported location fix. Append-only.

    Removed only by retention pruning or a bulk clear of the user's data.
    """
    __tablename__ = "location_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float)  # meters
    altitude = Column(Float)
    altitude_accuracy = Column(Float)
    heading = Column(Float)  # degrees
    speed = Column(Float)  # m/s
    gps_quality = Column(Integer)  # 0-100
    gsm_signal = Column(Integer)  # 0-100
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        # Latest sample per user:
        # SELECT * FROM location_data WHERE user_id=? ORDER BY created_at DESC LIMIT 1
        Index("idx_location_data_user_latest", "user_id", created_at.desc()),
    )


class AuditLog(Base):
    """Audit trail for settings changes and data clears."""
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True)
    action = Column(String, nullable=False)
    resource_type = Column(String)
    details = Column(JSON().with_variant(JSONB, "postgresql"))
    ip_address = Column(String)
    user_agent = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)


class OverlayToken(Base):
    """Long-lived overlay token. One per user, read-only location scope."""
    __tablename__ = "overlay_tokens"

    user_id = Column(String, primary_key=True)
    username = Column(String)
    token = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    last_used_at = Column(DateTime(timezone=True))
