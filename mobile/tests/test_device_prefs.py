#!/usr/bin/env python3
"""
Device preference store tests (in-memory SQLite).

Tests to verify:
1. Typed values round-trip
2. Legacy string coordinates are migrated to numbers at startup
3. Unparseable legacy values are dropped
4. Server settings are mirrored for fixed-mode tracking
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import pytest_asyncio

from pulserelay_mobile.models import LocationMode, LocationSettings
from pulserelay_mobile.prefs import (
    KEY_FIXED_LATITUDE,
    KEY_FIXED_LONGITUDE,
    KEY_FIXED_LOCATION_NAME,
    DevicePrefs,
)


@pytest_asyncio.fixture
async def prefs():
    store = DevicePrefs(":memory:")
    await store.initialize()
    yield store
    await store.close()


@pytest.mark.asyncio
async def test_typed_values(prefs):
    await prefs.put_float("f", 1.25)
    await prefs.put_int("i", 7)
    await prefs.put_bool("b", True)
    await prefs.put_str("s", "hello")

    assert await prefs.get_float("f") == 1.25
    assert await prefs.get_int("i") == 7
    assert await prefs.get_bool("b") is True
    assert await prefs.get_str("s") == "hello"
    assert await prefs.get_float("missing", 3.0) == 3.0


@pytest.mark.asyncio
async def test_auto_start_defaults_off(prefs):
    assert await prefs.auto_start() is False
    await prefs.set_auto_start(True)
    assert await prefs.auto_start() is True


@pytest.mark.asyncio
async def test_string_coordinates_unreadable_until_migrated(prefs):
    await prefs.put_str(KEY_FIXED_LATITUDE, "48,8566")
    await prefs.put_str(KEY_FIXED_LONGITUDE, "2.3522")

    assert await prefs.fixed_location() is None

    migrated = await prefs.migrate_legacy_coordinates()
    assert migrated == 2
    latitude, longitude, name = await prefs.fixed_location()
    assert latitude == pytest.approx(48.8566)
    assert longitude == pytest.approx(2.3522)
    assert name is None


@pytest.mark.asyncio
async def test_migration_drops_garbage(prefs):
    await prefs.put_str(KEY_FIXED_LATITUDE, "somewhere")
    await prefs.put_float(KEY_FIXED_LONGITUDE, 2.0)

    assert await prefs.migrate_legacy_coordinates() == 0
    assert await prefs.get_str(KEY_FIXED_LATITUDE) is None
    assert await prefs.get_float(KEY_FIXED_LONGITUDE) == 2.0


@pytest.mark.asyncio
async def test_migration_is_idempotent(prefs):
    await prefs.put_str(KEY_FIXED_LATITUDE, "10")
    await prefs.migrate_legacy_coordinates()
    assert await prefs.migrate_legacy_coordinates() == 0
    assert await prefs.get_float(KEY_FIXED_LATITUDE) == 10.0


@pytest.mark.asyncio
async def test_save_settings_mirrors_fixed_location(prefs):
    await prefs.save_settings(LocationSettings(
        enabled=True,
        location_mode=LocationMode.FIXED,
        fixed_latitude=40.0,
        fixed_longitude=-3.7,
        fixed_location_name="Madrid",
    ))

    assert await prefs.location_mode() == LocationMode.FIXED
    assert await prefs.fixed_location() == (40.0, -3.7, "Madrid")


@pytest.mark.asyncio
async def test_save_settings_keeps_coordinates_when_server_has_none(prefs):
    await prefs.put_float(KEY_FIXED_LATITUDE, 1.0)
    await prefs.put_float(KEY_FIXED_LONGITUDE, 2.0)
    await prefs.save_settings(LocationSettings(enabled=False))

    assert await prefs.location_mode() == LocationMode.GPS
    assert await prefs.fixed_location() == (1.0, 2.0, None)
    assert await prefs.get_str(KEY_FIXED_LOCATION_NAME) == ""
