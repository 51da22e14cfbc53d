"""
Signal quality scores attached to location samples (0-100).
"""
from typing import Optional

# (upper bound exclusive, points)
_ACCURACY_POINTS = ((5, 70), (10, 60), (20, 40), (50, 20))
_ACCURACY_FLOOR = 10
_AGE_POINTS = ((5, 30), (10, 20), (30, 10))
_AGE_FLOOR = 5

# Cellular dBm range mapped onto 0-100
GSM_DBM_WORST = -113
GSM_DBM_BEST = -51


def _points(value: float, table, floor: int) -> int:
    for bound, points in table:
        if value < bound:
            return points
    return floor


def gps_quality(accuracy_m: Optional[float], age_s: float) -> Optional[int]:
    """
    Score a fix: up to 70 points for accuracy, up to 30 for freshness.
    Returns None when the fix has no accuracy estimate.
    """
    if accuracy_m is None:
        return None
    score = _points(accuracy_m, _ACCURACY_POINTS, _ACCURACY_FLOOR)
    score += _points(age_s, _AGE_POINTS, _AGE_FLOOR)
    return min(100, score)


def gsm_signal_from_dbm(dbm: Optional[int]) -> Optional[int]:
    """Linear map of cellular signal strength to a percentage."""
    if dbm is None or dbm == 0:
        return None
    pct = int((dbm - GSM_DBM_WORST) / (GSM_DBM_BEST - GSM_DBM_WORST) * 100)
    return max(0, min(100, pct))
