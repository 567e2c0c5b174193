"""Data model for the ChipTrack integration.

Records are plain dataclasses owned by the storage layer. Relations between
records are expressed by id only. Every persisted record converts to a
JSON-safe storage payload (timestamps as ISO-8601 strings) and back; the
``from_storage_payload`` constructors raise ``KeyError``/``ValueError``/
``TypeError`` on malformed payloads so the storage layer can apply its
fail-open read policy.

Quality Scale: Platinum target
Home Assistant: 2025.9.3+
Python: 3.13+
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, NotRequired, TypedDict

from homeassistant.util import dt as dt_util

from .utils import parse_utc_datetime, validate_coordinates


class SignalQuality(Enum):
    """Radio signal quality reported with a fix."""

    STRONG = "strong"
    MEDIUM = "medium"
    WEAK = "weak"
    NONE = "none"


class AlertType(Enum):
    """Kinds of alerts raised by the alert engine."""

    ZONE_EXIT = "zone_exit"
    ZONE_ENTRY = "zone_entry"
    LOW_BATTERY = "low_battery"
    NO_SIGNAL = "no_signal"
    FOUND = "found"


class AlertPriority(Enum):
    """Alert priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ChipState(Enum):
    """Coarse derived chip status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    LOW_BATTERY = "low_battery"
    NO_SIGNAL = "no_signal"
    OFFLINE = "offline"


# Storage payloads


class ChipStoragePayload(TypedDict):
    """Persisted chip record."""

    id: str
    code: str
    pet_id: str
    pet_name: str
    owner_id: str
    is_active: bool
    registered_at: str
    last_seen: str | None
    tracker_entity_id: NotRequired[str | None]


class LocationFixStoragePayload(TypedDict):
    """Persisted location fix."""

    latitude: float
    longitude: float
    timestamp: str
    accuracy: float
    battery: int
    signal: str


class PetLocationStoragePayload(LocationFixStoragePayload):
    """Persisted latest location of a pet."""

    pet_id: str
    pet_name: str
    chip_id: str


class ZoneNotificationsPayload(TypedDict):
    """Persisted notification flags of a safe zone."""

    on_exit: bool
    on_entry: bool
    email: bool
    push: bool


class SafeZoneStoragePayload(TypedDict):
    """Persisted safe zone."""

    id: str
    pet_id: str
    name: str
    center_latitude: float
    center_longitude: float
    radius: float
    is_active: bool
    created_at: str
    notifications: ZoneNotificationsPayload


class AlertStoragePayload(TypedDict):
    """Persisted alert."""

    id: str
    pet_id: str
    chip_id: str
    type: str
    message: str
    timestamp: str
    location: LocationFixStoragePayload | None
    is_read: bool
    priority: str


class ZoneMembershipStoragePayload(TypedDict):
    """Persisted inside/outside flag for a (pet, zone) pair."""

    pet_id: str
    zone_id: str
    inside: bool


def _optional_datetime(value: Any) -> datetime | None:
    return None if value is None else parse_utc_datetime(value)


def _require_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"{name} must be a boolean, got {value!r}")
    return value


@dataclass
class ChipRecord:
    """Tracking chip bound to a single pet."""

    id: str
    code: str
    pet_id: str
    pet_name: str = ""
    owner_id: str = ""
    is_active: bool = False
    registered_at: datetime = field(default_factory=dt_util.utcnow)
    last_seen: datetime | None = None
    tracker_entity_id: str | None = None

    def to_storage_payload(self) -> ChipStoragePayload:
        """Convert the chip to a storage payload."""
        return {
            "id": self.id,
            "code": self.code,
            "pet_id": self.pet_id,
            "pet_name": self.pet_name,
            "owner_id": self.owner_id,
            "is_active": self.is_active,
            "registered_at": self.registered_at.isoformat(),
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "tracker_entity_id": self.tracker_entity_id,
        }

    @classmethod
    def from_storage_payload(cls, data: ChipStoragePayload) -> ChipRecord:
        """Create a chip from a storage payload."""
        return cls(
            id=str(data["id"]),
            code=str(data["code"]),
            pet_id=str(data["pet_id"]),
            pet_name=str(data.get("pet_name", "")),
            owner_id=str(data.get("owner_id", "")),
            is_active=_require_bool(data["is_active"], "is_active"),
            registered_at=parse_utc_datetime(data["registered_at"]),
            last_seen=_optional_datetime(data.get("last_seen")),
            tracker_entity_id=data.get("tracker_entity_id"),
        )


@dataclass(frozen=True)
class LocationFix:
    """A single location and telemetry observation.

    Attributes:
        latitude: Latitude in decimal degrees
        longitude: Longitude in decimal degrees
        timestamp: When the fix was taken (aware UTC)
        accuracy: Horizontal accuracy estimate in meters
        battery: Chip battery percentage (0-100)
        signal: Reported signal quality

    Raises:
        ValueError: If coordinates, accuracy or battery are out of range
    """

    latitude: float
    longitude: float
    timestamp: datetime
    accuracy: float
    battery: int
    signal: SignalQuality

    def __post_init__(self) -> None:
        """Validate coordinates and telemetry ranges."""
        if not validate_coordinates(self.latitude, self.longitude):
            raise ValueError(
                f"Invalid coordinates: {self.latitude}, {self.longitude}"
            )
        if self.accuracy < 0:
            raise ValueError("Accuracy cannot be negative")
        if not 0 <= self.battery <= 100:
            raise ValueError("Battery level must be between 0 and 100")

    def as_fix(self) -> LocationFix:
        """Return the bare fix without any pet metadata."""
        return LocationFix(
            latitude=self.latitude,
            longitude=self.longitude,
            timestamp=self.timestamp,
            accuracy=self.accuracy,
            battery=self.battery,
            signal=self.signal,
        )

    def to_storage_payload(self) -> LocationFixStoragePayload:
        """Convert the fix to a storage payload."""
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp.isoformat(),
            "accuracy": self.accuracy,
            "battery": self.battery,
            "signal": self.signal.value,
        }

    @classmethod
    def from_storage_payload(cls, data: LocationFixStoragePayload) -> LocationFix:
        """Create a fix from a storage payload."""
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            timestamp=parse_utc_datetime(data["timestamp"]),
            accuracy=float(data["accuracy"]),
            battery=int(data["battery"]),
            signal=SignalQuality(data["signal"]),
        )


@dataclass(frozen=True)
class PetLocation(LocationFix):
    """Latest fix of a pet, the only location kept per pet."""

    pet_id: str
    pet_name: str
    chip_id: str

    @classmethod
    def from_fix(
        cls, fix: LocationFix, *, pet_id: str, pet_name: str, chip_id: str
    ) -> PetLocation:
        """Attach pet metadata to a bare fix."""
        values = {f.name: getattr(fix, f.name) for f in fields(LocationFix)}
        return cls(**values, pet_id=pet_id, pet_name=pet_name, chip_id=chip_id)

    def to_storage_payload(self) -> PetLocationStoragePayload:  # type: ignore[override]
        """Convert the location to a storage payload."""
        payload = super().to_storage_payload()
        return {
            **payload,
            "pet_id": self.pet_id,
            "pet_name": self.pet_name,
            "chip_id": self.chip_id,
        }

    @classmethod
    def from_storage_payload(  # type: ignore[override]
        cls, data: PetLocationStoragePayload
    ) -> PetLocation:
        """Create a pet location from a storage payload."""
        return cls.from_fix(
            LocationFix.from_storage_payload(data),
            pet_id=str(data["pet_id"]),
            pet_name=str(data.get("pet_name", "")),
            chip_id=str(data.get("chip_id", "")),
        )


@dataclass
class ZoneNotifications:
    """Which transitions of a safe zone should notify."""

    on_exit: bool = True
    on_entry: bool = False
    email: bool = False
    push: bool = True

    def to_storage_payload(self) -> ZoneNotificationsPayload:
        """Convert the flags to a storage payload."""
        return {
            "on_exit": self.on_exit,
            "on_entry": self.on_entry,
            "email": self.email,
            "push": self.push,
        }

    @classmethod
    def from_storage_payload(cls, data: ZoneNotificationsPayload) -> ZoneNotifications:
        """Create notification flags from a storage payload."""
        return cls(
            on_exit=_require_bool(data["on_exit"], "on_exit"),
            on_entry=_require_bool(data["on_entry"], "on_entry"),
            email=bool(data.get("email", False)),
            push=bool(data.get("push", False)),
        )


@dataclass
class SafeZone:
    """Circular geofence monitored for a single pet."""

    id: str
    pet_id: str
    name: str
    center_latitude: float
    center_longitude: float
    radius: float
    is_active: bool = True
    created_at: datetime = field(default_factory=dt_util.utcnow)
    notifications: ZoneNotifications = field(default_factory=ZoneNotifications)

    def to_storage_payload(self) -> SafeZoneStoragePayload:
        """Convert the zone to a storage payload."""
        return {
            "id": self.id,
            "pet_id": self.pet_id,
            "name": self.name,
            "center_latitude": self.center_latitude,
            "center_longitude": self.center_longitude,
            "radius": self.radius,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "notifications": self.notifications.to_storage_payload(),
        }

    @classmethod
    def from_storage_payload(cls, data: SafeZoneStoragePayload) -> SafeZone:
        """Create a zone from a storage payload."""
        return cls(
            id=str(data["id"]),
            pet_id=str(data["pet_id"]),
            name=str(data["name"]),
            center_latitude=float(data["center_latitude"]),
            center_longitude=float(data["center_longitude"]),
            radius=float(data["radius"]),
            is_active=_require_bool(data["is_active"], "is_active"),
            created_at=parse_utc_datetime(data["created_at"]),
            notifications=ZoneNotifications.from_storage_payload(
                data["notifications"]
            ),
        )


@dataclass
class Alert:
    """Notification record produced by the alert engine."""

    id: str
    pet_id: str
    chip_id: str
    type: AlertType
    message: str
    timestamp: datetime
    priority: AlertPriority
    location: LocationFix | None = None
    is_read: bool = False

    def to_storage_payload(self) -> AlertStoragePayload:
        """Convert the alert to a storage payload."""
        return {
            "id": self.id,
            "pet_id": self.pet_id,
            "chip_id": self.chip_id,
            "type": self.type.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "location": (
                self.location.as_fix().to_storage_payload() if self.location else None
            ),
            "is_read": self.is_read,
            "priority": self.priority.value,
        }

    @classmethod
    def from_storage_payload(cls, data: AlertStoragePayload) -> Alert:
        """Create an alert from a storage payload."""
        location = data.get("location")
        return cls(
            id=str(data["id"]),
            pet_id=str(data["pet_id"]),
            chip_id=str(data.get("chip_id", "")),
            type=AlertType(data["type"]),
            message=str(data["message"]),
            timestamp=parse_utc_datetime(data["timestamp"]),
            priority=AlertPriority(data["priority"]),
            location=LocationFix.from_storage_payload(location) if location else None,
            is_read=_require_bool(data["is_read"], "is_read"),
        )

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-safe representation for service responses."""
        return dict(self.to_storage_payload())


@dataclass
class ZoneMembership:
    """Whether a pet was inside a zone as of the last evaluated fix."""

    pet_id: str
    zone_id: str
    inside: bool = False

    def to_storage_payload(self) -> ZoneMembershipStoragePayload:
        """Convert the flag to a storage payload."""
        return {"pet_id": self.pet_id, "zone_id": self.zone_id, "inside": self.inside}

    @classmethod
    def from_storage_payload(
        cls, data: ZoneMembershipStoragePayload
    ) -> ZoneMembership:
        """Create a membership flag from a storage payload."""
        return cls(
            pet_id=str(data["pet_id"]),
            zone_id=str(data["zone_id"]),
            inside=_require_bool(data["inside"], "inside"),
        )


@dataclass(frozen=True)
class ChipStatus:
    """Derived chip health, recomputed on every read and never stored."""

    chip_id: str
    status: ChipState
    last_update: datetime
    battery_level: int
    signal_strength: SignalQuality
    is_in_safe_zone: bool

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-safe representation for service responses."""
        return {
            "chip_id": self.chip_id,
            "status": self.status.value,
            "last_update": self.last_update.isoformat(),
            "battery_level": self.battery_level,
            "signal_strength": self.signal_strength.value,
            "is_in_safe_zone": self.is_in_safe_zone,
        }


@dataclass(frozen=True)
class ChipVerification:
    """Result of a chip code verification."""

    is_valid: bool
    is_registered: bool
