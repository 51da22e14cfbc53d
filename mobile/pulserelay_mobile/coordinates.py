"""
Parsing of user-entered coordinates.

Accepts both "." and "," as the decimal separator, since keyboards in many
locales only offer the comma.
"""
import math
from typing import Optional, Tuple

LATITUDE_RANGE = (-90.0, 90.0)
LONGITUDE_RANGE = (-180.0, 180.0)


class CoordinateError(ValueError):
    """Coordinate text could not be used."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


def normalize_decimal(text: str) -> str:
    """Strip whitespace and turn a decimal comma into a point."""
    return text.strip().replace(",", ".")


def parse_coordinate(text: Optional[str], field: str, bounds: Tuple[float, float]) -> float:
    """Parse one coordinate and check it is within bounds."""
    if text is None or not str(text).strip():
        raise CoordinateError(field, f"{field} is required")

    try:
        value = float(normalize_decimal(str(text)))
    except ValueError:
        raise CoordinateError(field, f"{field} is not a number")

    if math.isnan(value) or math.isinf(value):
        raise CoordinateError(field, f"{field} is not a number")

    low, high = bounds
    if not low <= value <= high:
        raise CoordinateError(field, f"{field} must be between {low:g} and {high:g}")
    return value


def parse_fixed_location(latitude_text: Optional[str], longitude_text: Optional[str]) -> Tuple[float, float]:
    """Parse a latitude/longitude pair as typed by the user."""
    latitude = parse_coordinate(latitude_text, "latitude", LATITUDE_RANGE)
    longitude = parse_coordinate(longitude_text, "longitude", LONGITUDE_RANGE)
    return latitude, longitude


def check_fixed_location(latitude: Optional[float], longitude: Optional[float]) -> None:
    """Range check already-numeric coordinates (e.g. from the preference store)."""
    if latitude is None:
        raise CoordinateError("latitude", "latitude is required")
    if longitude is None:
        raise CoordinateError("longitude", "longitude is required")
    parse_coordinate(repr(float(latitude)), "latitude", LATITUDE_RANGE)
    parse_coordinate(repr(float(longitude)), "longitude", LONGITUDE_RANGE)
