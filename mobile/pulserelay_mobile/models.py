"""
Client-side data models.

LocationSettings is the cached projection of the server record; every server
response replaces it wholesale.
"""
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

# Client-side bounds for the update interval (server accepts 1..300)
MIN_UPDATE_INTERVAL_S = 5
MAX_UPDATE_INTERVAL_S = 300


class LocationMode(str, Enum):
    GPS = "gps"
    FIXED = "fixed"


def clamp_interval(seconds: int) -> int:
    """Bound an update interval to what the client will schedule."""
    return max(MIN_UPDATE_INTERVAL_S, min(MAX_UPDATE_INTERVAL_S, int(seconds)))


@dataclass(frozen=True)
class LocationSettings:
    """Location sharing settings as exchanged with the backend."""
    enabled: bool = False
    location_mode: LocationMode = LocationMode.GPS
    accuracy_threshold: int = 5000
    update_interval: int = 30
    auto_disable_after: int = 3600
    fixed_latitude: Optional[float] = None
    fixed_longitude: Optional[float] = None
    fixed_location_name: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "LocationSettings":
        """Build from the camelCase wire format."""
        return cls(
            enabled=bool(data.get("enabled", False)),
            location_mode=LocationMode(data.get("locationMode") or LocationMode.GPS.value),
            accuracy_threshold=int(data.get("accuracyThreshold", 5000)),
            update_interval=int(data.get("updateInterval", 30)),
            auto_disable_after=int(data.get("autoDisableAfter", 3600)),
            fixed_latitude=data.get("fixedLatitude"),
            fixed_longitude=data.get("fixedLongitude"),
            fixed_location_name=data.get("fixedLocationName"),
        )

    def to_json(self) -> Dict[str, Any]:
        """Full record in the camelCase wire format."""
        return {
            "enabled": self.enabled,
            "locationMode": self.location_mode.value,
            "accuracyThreshold": self.accuracy_threshold,
            "updateInterval": self.update_interval,
            "autoDisableAfter": self.auto_disable_after,
            "fixedLatitude": self.fixed_latitude,
            "fixedLongitude": self.fixed_longitude,
            "fixedLocationName": self.fixed_location_name,
        }

    def with_changes(self, **changes) -> "LocationSettings":
        return replace(self, **changes)

    @property
    def is_fixed(self) -> bool:
        return self.location_mode == LocationMode.FIXED


@dataclass
class LocationFix:
    """A position to submit to the backend."""
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    altitude: Optional[float] = None
    altitude_accuracy: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    gps_quality: Optional[int] = None
    gsm_signal: Optional[int] = None
    timestamp: float = field(default_factory=time.time)

    def to_payload(self) -> Dict[str, Any]:
        """Body for POST /api/location/update (absent fields omitted)."""
        payload = {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "altitude": self.altitude,
            "altitudeAccuracy": self.altitude_accuracy,
            "heading": self.heading,
            "speed": self.speed,
            "gpsQuality": self.gps_quality,
            "gsmSignal": self.gsm_signal,
        }
        return {k: v for k, v in payload.items() if v is not None}

    @property
    def age_s(self) -> float:
        return max(0.0, time.time() - self.timestamp)
