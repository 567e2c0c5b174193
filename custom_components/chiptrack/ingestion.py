"""Location ingestion for the ChipTrack integration.

A :class:`FixSource` produces a :class:`LocationFix` for a chip. Two sources
are provided: a simulator that wanders around the owner's position and a
device tracker source that reads a real tracker entity. The
:class:`LocationIngestor` stores the resulting location and hands it to the
alert engine; nothing downstream depends on where the fix came from.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from homeassistant.const import (
    ATTR_BATTERY_LEVEL,
    ATTR_GPS_ACCURACY,
    ATTR_LATITUDE,
    ATTR_LONGITUDE,
    STATE_UNAVAILABLE,
    STATE_UNKNOWN,
)
from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util

from .alerts import AlertEngine
from .const import (
    ATTR_SIGNAL,
    DEFAULT_FALLBACK_LATITUDE,
    DEFAULT_FALLBACK_LONGITUDE,
    SIMULATION_MAX_ACCURACY,
    SIMULATION_MIN_ACCURACY,
    SIMULATION_MIN_BATTERY,
    SIMULATION_OFFSET_DEGREES,
    STORAGE_KEY_CHIPS,
)
from .exceptions import LocationUnavailableError, PermissionDeniedError
from .storage import ChipTrackStorage
from .types import ChipRecord, LocationFix, PetLocation, SignalQuality

_LOGGER = logging.getLogger(__name__)

_SIMULATED_SIGNALS = (SignalQuality.STRONG, SignalQuality.MEDIUM, SignalQuality.WEAK)


def _read_coordinates(hass: HomeAssistant, entity_id: str) -> tuple[Any, Any, Any]:
    """Return the state and coordinates of a tracked entity.

    Raises:
        LocationUnavailableError: If the entity is missing, unavailable or
            has no coordinates
    """
    state = hass.states.get(entity_id)
    if state is None or state.state in (STATE_UNAVAILABLE, STATE_UNKNOWN):
        raise LocationUnavailableError(entity_id, "entity unavailable")

    latitude = state.attributes.get(ATTR_LATITUDE)
    longitude = state.attributes.get(ATTR_LONGITUDE)
    if latitude is None or longitude is None:
        raise LocationUnavailableError(entity_id, "no coordinates")
    return state, float(latitude), float(longitude)


class OwnerPositionProvider:
    """Read the owner's current position from a person or tracker entity.

    Configuring an owner entity is what grants permission to use the owner's
    position; without one every request is denied.
    """

    def __init__(self, hass: HomeAssistant | None, entity_id: str | None) -> None:
        self.hass = hass
        self.entity_id = entity_id

    async def async_get_position(self) -> tuple[float, float]:
        """Return the owner's (latitude, longitude).

        Raises:
            PermissionDeniedError: If no owner entity is configured
            LocationUnavailableError: If the entity has no usable position
        """
        if self.hass is None or not self.entity_id:
            raise PermissionDeniedError("owner")
        _, latitude, longitude = _read_coordinates(self.hass, self.entity_id)
        return latitude, longitude


class FixSource(ABC):
    """Produces location fixes for chips."""

    @abstractmethod
    async def async_produce_fix(self, chip: ChipRecord) -> LocationFix:
        """Return a new fix for ``chip``."""


class SimulatedFixSource(FixSource):
    """Simulate a pet wandering around its owner."""

    def __init__(
        self,
        owner_position: OwnerPositionProvider | None = None,
        *,
        fallback: tuple[float, float] = (
            DEFAULT_FALLBACK_LATITUDE,
            DEFAULT_FALLBACK_LONGITUDE,
        ),
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = dt_util.utcnow,
    ) -> None:
        """Initialize the simulator.

        Args:
            owner_position: Provider of the owner's position, if any
            fallback: Coordinate used when the owner's position is unavailable
            rng: Random generator, seeded in tests
            clock: Source of the fix timestamp
        """
        self._owner_position = owner_position or OwnerPositionProvider(None, None)
        self._fallback = fallback
        self._rng = rng or random.Random()
        self._clock = clock

    async def _async_base_position(self) -> tuple[float, float]:
        try:
            return await self._owner_position.async_get_position()
        except LocationUnavailableError as err:
            _LOGGER.debug("Using default location for simulation: %s", err)
            return self._fallback

    async def async_produce_fix(self, chip: ChipRecord) -> LocationFix:
        latitude, longitude = await self._async_base_position()
        rng = self._rng

        # ~500m of wander around the base position
        offset_lat = (rng.random() - 0.5) * 2 * SIMULATION_OFFSET_DEGREES
        offset_lon = (rng.random() - 0.5) * 2 * SIMULATION_OFFSET_DEGREES

        return LocationFix(
            latitude=latitude + offset_lat,
            longitude=longitude + offset_lon,
            timestamp=self._clock(),
            accuracy=rng.uniform(SIMULATION_MIN_ACCURACY, SIMULATION_MAX_ACCURACY),
            battery=max(SIMULATION_MIN_BATTERY, 100 - rng.randint(0, 29)),
            signal=rng.choice(_SIMULATED_SIGNALS),
        )


def signal_from_accuracy(accuracy: float) -> SignalQuality:
    """Estimate signal quality from a GPS accuracy radius."""
    if accuracy <= 20:
        return SignalQuality.STRONG
    if accuracy <= 50:
        return SignalQuality.MEDIUM
    return SignalQuality.WEAK


class DeviceTrackerFixSource(FixSource):
    """Read fixes from the device tracker entity bound to each chip."""

    def __init__(self, hass: HomeAssistant) -> None:
        self.hass = hass

    async def async_produce_fix(self, chip: ChipRecord) -> LocationFix:
        if not chip.tracker_entity_id:
            raise LocationUnavailableError(chip.id, "no tracker entity configured")

        state, latitude, longitude = _read_coordinates(
            self.hass, chip.tracker_entity_id
        )
        attributes = state.attributes
        accuracy = float(attributes.get(ATTR_GPS_ACCURACY) or 0)

        # Trackers that do not report a battery are treated as full
        battery = attributes.get(ATTR_BATTERY_LEVEL)
        battery = 100 if battery is None else max(0, min(100, int(battery)))

        try:
            signal = SignalQuality(attributes[ATTR_SIGNAL])
        except (KeyError, ValueError):
            signal = signal_from_accuracy(accuracy)

        return LocationFix(
            latitude=latitude,
            longitude=longitude,
            timestamp=state.last_updated,
            accuracy=accuracy,
            battery=battery,
            signal=signal,
        )


class LocationIngestor:
    """Turn fixes into stored pet locations and evaluate them for alerts."""

    def __init__(
        self,
        storage: ChipTrackStorage,
        alert_engine: AlertEngine,
        source: FixSource,
    ) -> None:
        self._storage = storage
        self._alert_engine = alert_engine
        self.source = source

    async def async_ingest(self, chip: ChipRecord) -> PetLocation:
        """Produce, store and evaluate a new fix for ``chip``.

        The stored location overwrites the previous fix of the pet. Alert
        evaluation failures are logged; the stored location stands.

        Raises:
            LocationUnavailableError: If the source has no fix
            StorageError: If the location cannot be written
        """
        fix = await self.source.async_produce_fix(chip)
        location = PetLocation.from_fix(
            fix,
            pet_id=chip.pet_id,
            pet_name=chip.pet_name,
            chip_id=chip.id,
        )

        await self._storage.async_upsert_location(location)
        await self._async_touch_chip(chip.id, fix.timestamp)

        _LOGGER.debug(
            "Ingested fix for %s: %.6f,%.6f battery %d%% signal %s",
            chip.pet_id,
            location.latitude,
            location.longitude,
            location.battery,
            location.signal.value,
        )

        try:
            await self._alert_engine.async_evaluate(location)
        except Exception as err:
            _LOGGER.error("Failed to evaluate alerts for %s: %s", chip.pet_id, err)

        return location

    async def _async_touch_chip(self, chip_id: str, seen_at: datetime) -> None:
        def _touch(chips: list[ChipRecord]) -> bool:
            for chip in chips:
                if chip.id == chip_id:
                    chip.last_seen = seen_at
                    return True
            return False

        await self._storage.async_update(STORAGE_KEY_CHIPS, _touch)
