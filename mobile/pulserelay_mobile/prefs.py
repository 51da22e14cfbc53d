"""
Device-local preference store.

Typed key/value pairs in SQLite. Mirrors the last server-confirmed settings
so tracking can run (fixed mode in particular) without a round trip, and
holds device-only preferences such as auto_start.
"""
import logging
from pathlib import Path
from typing import Optional, Tuple

import aiosqlite

from pulserelay_mobile.coordinates import CoordinateError, LATITUDE_RANGE, LONGITUDE_RANGE, parse_coordinate
from pulserelay_mobile.models import LocationMode, LocationSettings

logger = logging.getLogger("pulserelay.prefs")

KEY_LOCATION_MODE = "location_mode"
KEY_FIXED_LATITUDE = "fixed_latitude"
KEY_FIXED_LONGITUDE = "fixed_longitude"
KEY_FIXED_LOCATION_NAME = "fixed_location_name"
KEY_AUTO_START = "auto_start"
KEY_UPDATE_INTERVAL = "update_interval"

KIND_STR = "str"
KIND_FLOAT = "float"
KIND_INT = "int"
KIND_BOOL = "bool"


class DevicePrefs:
    """Async key/value preferences backed by aiosqlite."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None

    async def initialize(self):
        """Open the database and create the table if needed."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS prefs (
                key TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                value TEXT
            )
        """)
        await self._db.commit()

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None

    # ---- raw access ----

    async def _get(self, key: str) -> Optional[Tuple[str, Optional[str]]]:
        cursor = await self._db.execute("SELECT kind, value FROM prefs WHERE key = ?", (key,))
        row = await cursor.fetchone()
        return (row[0], row[1]) if row else None

    async def _put(self, key: str, kind: str, value: Optional[str]):
        await self._db.execute(
            "INSERT INTO prefs (key, kind, value) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET kind = excluded.kind, value = excluded.value",
            (key, kind, value),
        )
        await self._db.commit()

    async def remove(self, key: str):
        await self._db.execute("DELETE FROM prefs WHERE key = ?", (key,))
        await self._db.commit()

    # ---- typed access ----

    async def get_str(self, key: str, default: Optional[str] = None) -> Optional[str]:
        entry = await self._get(key)
        if entry is None or entry[0] != KIND_STR:
            return default
        return entry[1]

    async def put_str(self, key: str, value: Optional[str]):
        await self._put(key, KIND_STR, value)

    async def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        """Numeric value; legacy string entries read as missing until migrated."""
        entry = await self._get(key)
        if entry is None or entry[0] != KIND_FLOAT or entry[1] is None:
            return default
        return float(entry[1])

    async def put_float(self, key: str, value: float):
        await self._put(key, KIND_FLOAT, repr(float(value)))

    async def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        entry = await self._get(key)
        if entry is None or entry[0] != KIND_INT or entry[1] is None:
            return default
        return int(entry[1])

    async def put_int(self, key: str, value: int):
        await self._put(key, KIND_INT, str(int(value)))

    async def get_bool(self, key: str, default: bool = False) -> bool:
        entry = await self._get(key)
        if entry is None or entry[0] != KIND_BOOL:
            return default
        return entry[1] == "1"

    async def put_bool(self, key: str, value: bool):
        await self._put(key, KIND_BOOL, "1" if value else "0")

    # ---- startup migration ----

    async def migrate_legacy_coordinates(self) -> int:
        """
        Convert fixed coordinates stored as strings by older app versions.

        Runs once at startup; read paths only ever see numeric values.
        Unparseable legacy values are dropped. Returns the number of keys
        converted.
        """
        migrated = 0
        for key, bounds in ((KEY_FIXED_LATITUDE, LATITUDE_RANGE), (KEY_FIXED_LONGITUDE, LONGITUDE_RANGE)):
            entry = await self._get(key)
            if entry is None or entry[0] != KIND_STR:
                continue
            try:
                value = parse_coordinate(entry[1], key, bounds)
            except CoordinateError as e:
                logger.warning(f"Dropping unusable legacy {key} {entry[1]!r}: {e.message}")
                await self.remove(key)
                continue
            await self.put_float(key, value)
            migrated += 1

        if migrated:
            logger.info(f"Migrated {migrated} legacy coordinate preference(s)")
        return migrated

    # ---- settings mirror ----

    async def save_settings(self, settings: LocationSettings):
        """Mirror the server-confirmed settings locally."""
        await self.put_str(KEY_LOCATION_MODE, settings.location_mode.value)
        await self.put_int(KEY_UPDATE_INTERVAL, settings.update_interval)
        if settings.fixed_latitude is not None and settings.fixed_longitude is not None:
            await self.put_float(KEY_FIXED_LATITUDE, settings.fixed_latitude)
            await self.put_float(KEY_FIXED_LONGITUDE, settings.fixed_longitude)
        await self.put_str(KEY_FIXED_LOCATION_NAME, settings.fixed_location_name or "")

    async def location_mode(self) -> LocationMode:
        value = await self.get_str(KEY_LOCATION_MODE, LocationMode.GPS.value)
        try:
            return LocationMode(value)
        except ValueError:
            return LocationMode.GPS

    async def fixed_location(self) -> Optional[Tuple[float, float, Optional[str]]]:
        """(latitude, longitude, name) or None when not configured."""
        latitude = await self.get_float(KEY_FIXED_LATITUDE)
        longitude = await self.get_float(KEY_FIXED_LONGITUDE)
        if latitude is None or longitude is None:
            return None
        name = await self.get_str(KEY_FIXED_LOCATION_NAME)
        return latitude, longitude, name or None

    async def auto_start(self) -> bool:
        return await self.get_bool(KEY_AUTO_START, False)

    async def set_auto_start(self, enabled: bool):
        await self.put_bool(KEY_AUTO_START, enabled)
