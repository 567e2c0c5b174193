"""Constants for the ChipTrack integration.

Quality Scale: Platinum target
Home Assistant: 2025.9.3+
Python: 3.13+
"""

from __future__ import annotations

from datetime import timedelta
from typing import Final

from homeassistant.const import Platform

DOMAIN: Final[str] = "chiptrack"
STORAGE_VERSION: Final[int] = 1

PLATFORMS: Final[tuple[Platform, ...]] = (
    Platform.DEVICE_TRACKER,
    Platform.SENSOR,
)

# Storage keys, one Home Assistant store per collection
STORAGE_KEY_CHIPS: Final[str] = f"{DOMAIN}.chips"
STORAGE_KEY_LOCATIONS: Final[str] = f"{DOMAIN}.locations"
STORAGE_KEY_SAFE_ZONES: Final[str] = f"{DOMAIN}.safe_zones"
STORAGE_KEY_ALERTS: Final[str] = f"{DOMAIN}.alerts"
STORAGE_KEY_ZONE_MEMBERSHIP: Final[str] = f"{DOMAIN}.zone_membership"

# Configuration keys
CONF_FIX_SOURCE: Final[str] = "fix_source"
CONF_OWNER_ENTITY_ID: Final[str] = "owner_entity_id"
CONF_FALLBACK_LATITUDE: Final[str] = "fallback_latitude"
CONF_FALLBACK_LONGITUDE: Final[str] = "fallback_longitude"
CONF_NOTIFY_SERVICE: Final[str] = "notify_service"
CONF_SEED_DEMO_CHIP: Final[str] = "seed_demo_chip"
CONF_DEBUG_LOGGING: Final[str] = "debug_logging"

FIX_SOURCE_SIMULATED: Final[str] = "simulated"
FIX_SOURCE_DEVICE_TRACKER: Final[str] = "device_tracker"
FIX_SOURCES: Final[tuple[str, ...]] = (
    FIX_SOURCE_SIMULATED,
    FIX_SOURCE_DEVICE_TRACKER,
)

# Mexico City, used when the owner's position is not available
DEFAULT_FALLBACK_LATITUDE: Final[float] = 19.4326
DEFAULT_FALLBACK_LONGITUDE: Final[float] = -99.1332
DEFAULT_OWNER_ID: Final[str] = "current_user"

# Tracking cadence
TRACKING_INTERVAL: Final[timedelta] = timedelta(seconds=30)
ALERT_CLEANUP_INTERVAL: Final[timedelta] = timedelta(hours=1)

# Simulation parameters
SIMULATION_OFFSET_DEGREES: Final[float] = 0.0025  # ~500m of wander
SIMULATION_MIN_ACCURACY: Final[float] = 5.0
SIMULATION_MAX_ACCURACY: Final[float] = 15.0
SIMULATION_MIN_BATTERY: Final[int] = 20

# Alert thresholds
LOW_BATTERY_THRESHOLD: Final[int] = 20
LOW_BATTERY_COOLDOWN: Final[timedelta] = timedelta(hours=6)
SIGNAL_LOSS_THRESHOLD: Final[timedelta] = timedelta(minutes=60)
SIGNAL_LOSS_COOLDOWN: Final[timedelta] = timedelta(hours=2)
ALERT_RETENTION: Final[timedelta] = timedelta(days=30)

# Status derivation
STATUS_ACTIVE_WINDOW: Final[timedelta] = timedelta(minutes=10)
STATUS_INACTIVE_WINDOW: Final[timedelta] = timedelta(minutes=60)
STATUS_LOW_BATTERY_THRESHOLD: Final[int] = 20

# Geodesy
EARTH_RADIUS_M: Final[float] = 6_371_000.0
MIN_SAFE_ZONE_RADIUS: Final[float] = 1.0
MAX_SAFE_ZONE_RADIUS: Final[float] = 50_000.0

# Chip codes
CHIP_CODE_PATTERN: Final[str] = r"^CHIP-\d{4}-\d{4}-\d{4}$"

# Demo data seeded into an empty store
DEMO_CHIP_ID: Final[str] = "chip_001"
DEMO_CHIP_CODE: Final[str] = "CHIP-1234-5678-9012"
DEMO_PET_ID: Final[str] = "pet_001"
DEMO_PET_NAME: Final[str] = "Max"
DEMO_OWNER_ID: Final[str] = "user_001"

# Events and dispatcher signals
EVENT_ALERT: Final[str] = f"{DOMAIN}_alert"
SIGNAL_TRACKING_UPDATED: Final[str] = f"{DOMAIN}_tracking_updated"
SIGNAL_CHIP_REGISTERED: Final[str] = f"{DOMAIN}_chip_registered"

# Services
SERVICE_REGISTER_CHIP: Final[str] = "register_chip"
SERVICE_VERIFY_CHIP_CODE: Final[str] = "verify_chip_code"
SERVICE_DEACTIVATE_CHIP: Final[str] = "deactivate_chip"
SERVICE_CREATE_SAFE_ZONE: Final[str] = "create_safe_zone"
SERVICE_DISABLE_SAFE_ZONE: Final[str] = "disable_safe_zone"
SERVICE_SIMULATE_TRACKING: Final[str] = "simulate_tracking"
SERVICE_GET_ALERTS: Final[str] = "get_alerts"
SERVICE_MARK_ALERT_READ: Final[str] = "mark_alert_read"
SERVICE_MARK_ALL_ALERTS_READ: Final[str] = "mark_all_alerts_read"
SERVICE_CLEANUP_ALERTS: Final[str] = "cleanup_alerts"
SERVICE_GET_CHIP_STATUS: Final[str] = "get_chip_status"

ATTR_PET_ID: Final[str] = "pet_id"
ATTR_PET_NAME: Final[str] = "pet_name"
ATTR_CHIP_ID: Final[str] = "chip_id"
ATTR_CHIP_CODE: Final[str] = "chip_code"
ATTR_IS_VERIFIED: Final[str] = "is_verified"
ATTR_OWNER_ID: Final[str] = "owner_id"
ATTR_TRACKER_ENTITY_ID: Final[str] = "tracker_entity_id"
ATTR_ZONE_ID: Final[str] = "zone_id"
ATTR_ALERT_ID: Final[str] = "alert_id"
ATTR_LIMIT: Final[str] = "limit"
ATTR_RADIUS: Final[str] = "radius"
ATTR_NOTIFY_ON_EXIT: Final[str] = "notify_on_exit"
ATTR_NOTIFY_ON_ENTRY: Final[str] = "notify_on_entry"
ATTR_NOTIFY_EMAIL: Final[str] = "notify_email"
ATTR_NOTIFY_PUSH: Final[str] = "notify_push"
ATTR_SIGNAL: Final[str] = "signal"
