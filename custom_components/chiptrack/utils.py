"""Utility helpers for the ChipTrack integration."""

from __future__ import annotations

import math
import random
import re
import string
import time
from datetime import UTC, datetime
from typing import Any

from homeassistant.util import dt as dt_util

from .const import CHIP_CODE_PATTERN, EARTH_RADIUS_M

_CHIP_CODE_RE = re.compile(CHIP_CODE_PATTERN)
_ID_ALPHABET = string.ascii_lowercase + string.digits


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two GPS coordinates using Haversine formula.

    Args:
        lat1: First latitude
        lon1: First longitude
        lat2: Second latitude
        lon2: Second longitude

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def validate_coordinates(latitude: float, longitude: float) -> bool:
    """Return True when the coordinates are inside the valid Earth range."""
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def is_valid_chip_code(chip_code: Any) -> bool:
    """Return True if ``chip_code`` matches ``CHIP-####-####-####``."""
    return isinstance(chip_code, str) and _CHIP_CODE_RE.match(chip_code) is not None


def generate_id(prefix: str) -> str:
    """Generate a record id such as ``alert_1718000000000_k3j9x0a1b``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def parse_utc_datetime(value: Any) -> datetime:
    """Re-hydrate a persisted ISO-8601 timestamp into an aware UTC datetime.

    Raises:
        ValueError: If the value is not a parseable timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = dt_util.parse_datetime(value)
        if parsed is None:
            raise ValueError(f"Invalid timestamp: {value!r}")
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return dt_util.as_utc(parsed)
