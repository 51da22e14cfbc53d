"""
Sample store tests: sharing gate, insert, retention prune, ordering.

Run with: pytest cloud/tests/test_samples.py -v
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from pulserelay.schemas import LocationSettingsSchema, LocationUpdate
from pulserelay.services import samples
from pulserelay.services.location_settings import get_settings, update_settings

USER = "user-1"
T0 = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


async def enable(db, user_id=USER, **overrides):
    data = {"enabled": True}
    data.update(overrides)
    await update_settings(db, user_id, LocationSettingsSchema.model_validate(data), now=T0)
    await db.commit()
    return await samples.require_sharing_enabled(db, user_id)


class TestSharingGate:

    @pytest.mark.asyncio
    async def test_no_settings_row_is_rejected(self, db):
        with pytest.raises(samples.SharingDisabledError):
            await samples.require_sharing_enabled(db, USER)

    @pytest.mark.asyncio
    async def test_default_settings_are_rejected(self, db):
        await get_settings(db, USER)
        with pytest.raises(samples.SharingDisabledError):
            await samples.require_sharing_enabled(db, USER)

    @pytest.mark.asyncio
    async def test_enabled_passes(self, db):
        sharing = await enable(db)
        assert sharing.user_id == USER


class TestRecordSample:

    @pytest.mark.asyncio
    async def test_optional_fields_stored_as_null(self, db):
        sharing = await enable(db)
        sample = await samples.record_sample(db, sharing, LocationUpdate(latitude=48.85, longitude=2.35), now=T0)
        await db.commit()

        stored = await samples.latest_sample(db, USER)
        assert stored.id == sample.id
        assert stored.accuracy is None
        assert stored.heading is None
        assert stored.gps_quality is None

    @pytest.mark.asyncio
    async def test_quality_fields_stored(self, db):
        sharing = await enable(db)
        update = LocationUpdate.model_validate({
            "latitude": 48.85,
            "longitude": 2.35,
            "accuracy": 8.5,
            "altitude": 35.0,
            "altitudeAccuracy": 3.0,
            "heading": 270.0,
            "speed": 1.4,
            "gpsQuality": 90,
            "gsmSignal": 64,
        })
        await samples.record_sample(db, sharing, update, now=T0)
        await db.commit()

        stored = await samples.latest_sample(db, USER)
        assert stored.altitude_accuracy == 3.0
        assert stored.gps_quality == 90
        assert stored.gsm_signal == 64

    @pytest.mark.asyncio
    async def test_accuracy_above_threshold_is_stored(self, db):
        """Threshold is advisory: the sample is kept, only a warning is logged."""
        sharing = await enable(db, accuracyThreshold=10)
        with patch.object(samples, "logger") as mock_logger:
            await samples.record_sample(db, sharing, LocationUpdate(latitude=1.0, longitude=1.0, accuracy=500), now=T0)
        await db.commit()

        assert await samples.count_samples(db, USER) == 1
        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.kwargs["threshold_m"] == 10


class TestRetention:

    @pytest.mark.asyncio
    async def test_insert_prunes_samples_older_than_24h(self, db):
        sharing = await enable(db)
        await samples.record_sample(db, sharing, LocationUpdate(latitude=1.0, longitude=1.0), now=T0)
        await samples.record_sample(db, sharing, LocationUpdate(latitude=2.0, longitude=2.0), now=T0 + timedelta(hours=12))
        await db.commit()
        assert await samples.count_samples(db, USER) == 2

        await samples.record_sample(db, sharing, LocationUpdate(latitude=3.0, longitude=3.0), now=T0 + timedelta(hours=25))
        await db.commit()

        remaining = await samples.list_samples(db, USER, limit=10)
        assert [s.latitude for s in remaining] == [3.0, 2.0]

    @pytest.mark.asyncio
    async def test_prune_is_per_user(self, db):
        mine = await enable(db)
        other = await enable(db, "user-2")
        await samples.record_sample(db, other, LocationUpdate(latitude=1.0, longitude=1.0), now=T0)
        await samples.record_sample(db, mine, LocationUpdate(latitude=1.0, longitude=1.0), now=T0 + timedelta(hours=30))
        await db.commit()

        assert await samples.count_samples(db, "user-2") == 1


class TestQueries:

    @pytest.mark.asyncio
    async def test_history_newest_first_with_paging(self, db):
        sharing = await enable(db)
        for i in range(5):
            await samples.record_sample(
                db, sharing, LocationUpdate(latitude=float(i), longitude=0.0), now=T0 + timedelta(seconds=i)
            )
        await db.commit()

        page = await samples.list_samples(db, USER, limit=2, offset=1)
        assert [s.latitude for s in page] == [3.0, 2.0]

    @pytest.mark.asyncio
    async def test_latest_sample_none_when_empty(self, db):
        assert await samples.latest_sample(db, USER) is None

    @pytest.mark.asyncio
    async def test_clear_samples(self, db):
        sharing = await enable(db)
        await samples.record_sample(db, sharing, LocationUpdate(latitude=1.0, longitude=1.0), now=T0)
        deleted = await samples.clear_samples(db, USER)
        await db.commit()

        assert deleted == 1
        assert await samples.count_samples(db, USER) == 0
