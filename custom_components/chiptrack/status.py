"""Derived chip status for the ChipTrack integration."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from homeassistant.util import dt as dt_util

from .const import (
    STATUS_ACTIVE_WINDOW,
    STATUS_INACTIVE_WINDOW,
    STATUS_LOW_BATTERY_THRESHOLD,
)
from .geofencing import zone_contains
from .storage import ChipTrackStorage
from .types import ChipRecord, ChipState, ChipStatus, PetLocation, SignalQuality


def _find_chip(chips: list[ChipRecord], pet_id: str) -> ChipRecord | None:
    return next((chip for chip in chips if chip.pet_id == pet_id), None)


class ChipStatusAggregator:
    """Derive a coarse chip status from the latest fix of a pet.

    The result is recomputed on every call and never stored. Safe zone
    membership is recomputed from the active zones and does not consult the
    persisted membership flags used by the geofence evaluator.
    """

    def __init__(
        self,
        storage: ChipTrackStorage,
        *,
        clock: Callable[[], datetime] = dt_util.utcnow,
    ) -> None:
        self._storage = storage
        self._clock = clock

    async def async_chip_status(self, pet_id: str) -> ChipStatus | None:
        """Return the status of the pet's chip, or None without a chip."""
        chips = await self._storage.async_get_chips()
        # Prefer the active chip when a pet has had its chip replaced
        chip = _find_chip([c for c in chips if c.is_active], pet_id) or _find_chip(
            chips, pet_id
        )
        if chip is None:
            return None

        location = next(
            (
                loc
                for loc in await self._storage.async_get_locations()
                if loc.pet_id == pet_id
            ),
            None,
        )
        if location is None:
            return ChipStatus(
                chip_id=chip.id,
                status=ChipState.OFFLINE,
                last_update=chip.last_seen or chip.registered_at,
                battery_level=0,
                signal_strength=SignalQuality.NONE,
                is_in_safe_zone=False,
            )

        return ChipStatus(
            chip_id=chip.id,
            status=self._classify(location),
            last_update=location.timestamp,
            battery_level=location.battery,
            signal_strength=location.signal,
            is_in_safe_zone=await self._async_in_any_zone(location),
        )

    def _classify(self, location: PetLocation) -> ChipState:
        age = self._clock() - location.timestamp
        if age < STATUS_ACTIVE_WINDOW:
            if location.battery < STATUS_LOW_BATTERY_THRESHOLD:
                return ChipState.LOW_BATTERY
            return ChipState.ACTIVE
        if age < STATUS_INACTIVE_WINDOW:
            return ChipState.INACTIVE
        return ChipState.NO_SIGNAL

    async def _async_in_any_zone(self, location: PetLocation) -> bool:
        return any(
            zone_contains(zone, location)
            for zone in await self._storage.async_get_safe_zones()
            if zone.pet_id == location.pet_id and zone.is_active
        )
