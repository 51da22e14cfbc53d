"""
Staleness evaluation for shared locations.

A share is stale when a GPS share has reported before but has not reported
within its auto-disable window. Staleness is decided at read time only and
never touches the stored `enabled` flag.

Rules:
    - Fixed-mode shares never go stale (a fixed coordinate needs no refresh)
    - auto_disable_after == 0 disables the check
    - No sample yet means "not started", which is fresh
    - A sample at t0 is fresh on [t0, t0 + T) and stale from t0 + T onward
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pulserelay.models import ensure_utc
from pulserelay.schemas import LocationMode


@dataclass(frozen=True)
class Freshness:
    """Result of a staleness check."""
    stale: bool
    reason: Optional[str] = None
    age_s: Optional[float] = None


FRESH = Freshness(stale=False)


def evaluate_staleness(
    latest_sample_at: Optional[datetime],
    auto_disable_after: int,
    mode: LocationMode | str,
    now: datetime,
) -> Freshness:
    """Decide whether the latest sample is too old to surface."""
    if LocationMode(mode) != LocationMode.GPS:
        return FRESH
    if not auto_disable_after or auto_disable_after <= 0:
        return FRESH
    if latest_sample_at is None:
        return FRESH

    age_s = (ensure_utc(now) - ensure_utc(latest_sample_at)).total_seconds()
    if age_s < auto_disable_after:
        return Freshness(stale=False, age_s=age_s)

    minutes = int(age_s / 60 + 0.5)
    return Freshness(
        stale=True,
        reason=f"No location updates for {minutes} minutes",
        age_s=age_s,
    )
