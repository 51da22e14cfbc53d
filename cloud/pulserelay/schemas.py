"""
Pydantic schemas for request/response validation.

Wire format is camelCase (shared with the mobile client and overlays);
attributes are snake_case with aliases.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class LocationMode(str, Enum):
    """How the user shares location."""
    GPS = "gps"      # live device fixes
    FIXED = "fixed"  # manually configured static coordinate


# ============ Settings ============

class LocationSettingsSchema(BaseModel):
    """
    Full location sharing settings record.

    Used both as the PUT body (the caller always sends the full desired
    record) and as the GET/PUT response.
    """
    enabled: bool
    location_mode: LocationMode = Field(default=LocationMode.GPS, alias="locationMode")
    accuracy_threshold: int = Field(default=5000, ge=1, le=10000, alias="accuracyThreshold")
    update_interval: int = Field(default=30, ge=1, le=300, alias="updateInterval")
    auto_disable_after: int = Field(default=3600, ge=0, le=86400, alias="autoDisableAfter")
    fixed_latitude: Optional[float] = Field(default=None, alias="fixedLatitude")
    fixed_longitude: Optional[float] = Field(default=None, alias="fixedLongitude")
    fixed_location_name: Optional[str] = Field(default=None, max_length=255, alias="fixedLocationName")

    class Config:
        populate_by_name = True

    @classmethod
    def from_row(cls, row) -> "LocationSettingsSchema":
        """Project a LocationSharing row into the wire shape."""
        return cls(
            enabled=bool(row.enabled),
            location_mode=LocationMode(row.location_mode or LocationMode.GPS.value),
            accuracy_threshold=row.accuracy_threshold,
            update_interval=row.update_interval,
            auto_disable_after=row.auto_disable_after,
            fixed_latitude=row.fixed_latitude,
            fixed_longitude=row.fixed_longitude,
            fixed_location_name=row.fixed_name,
        )


class SettingsResponse(BaseModel):
    """GET /api/location/settings response."""
    success: bool = True
    settings: LocationSettingsSchema


class SettingsUpdateResponse(BaseModel):
    """PUT /api/location/settings response. Echoes the stored record."""
    success: bool = True
    message: str
    settings: LocationSettingsSchema


class MessageResponse(BaseModel):
    """Plain acknowledgement."""
    success: bool = True
    message: str


# ============ Samples ============

class LocationUpdate(BaseModel):
    """Single location fix submitted by the mobile client."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0, le=10000)
    altitude: Optional[float] = None
    altitude_accuracy: Optional[float] = Field(default=None, ge=0, alias="altitudeAccuracy")
    heading: Optional[float] = Field(default=None, ge=0, le=360)
    speed: Optional[float] = Field(default=None, ge=0)
    gps_quality: Optional[int] = Field(default=None, ge=0, le=100, alias="gpsQuality")
    gsm_signal: Optional[int] = Field(default=None, ge=0, le=100, alias="gsmSignal")

    class Config:
        populate_by_name = True


class SamplePoint(BaseModel):
    """Stored sample as returned by history."""
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    altitude: Optional[float] = None
    altitude_accuracy: Optional[float] = Field(default=None, alias="altitudeAccuracy")
    heading: Optional[float] = None
    speed: Optional[float] = None
    gps_quality: Optional[int] = Field(default=None, alias="gpsQuality")
    gsm_signal: Optional[int] = Field(default=None, alias="gsmSignal")
    timestamp: datetime

    class Config:
        populate_by_name = True


class CurrentLocationPoint(SamplePoint):
    """Latest sample annotated with how it was shared."""
    source: LocationMode
    name: Optional[str] = None  # fixed location name, fixed mode only


class CurrentLocationResponse(BaseModel):
    """What a dashboard or overlay should show right now."""
    success: bool = True
    enabled: bool
    location: Optional[CurrentLocationPoint] = None
    stale: bool = False
    reason: Optional[str] = None


class HistoryResponse(BaseModel):
    """Paged sample history, newest first."""
    success: bool = True
    enabled: bool
    history: list[SamplePoint] = []


# ============ Tokens ============

class MobileTokenResponse(BaseModel):
    """Newly issued mobile API token."""
    success: bool = True
    token: str
    created_at: datetime = Field(alias="createdAt")
    expires_at: datetime = Field(alias="expiresAt")

    class Config:
        populate_by_name = True


class OverlayTokenResponse(BaseModel):
    """Overlay token details (token is null when none has been generated)."""
    success: bool = True
    token: Optional[str] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    last_used_at: Optional[datetime] = Field(default=None, alias="lastUsedAt")

    class Config:
        populate_by_name = True
