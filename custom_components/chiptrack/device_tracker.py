"""Device tracker platform for the ChipTrack integration.

Exposes the latest stored location of each chip's pet as a GPS tracker so
pets show up on the map and in zone automations.

Quality Scale: Platinum target
Home Assistant: 2025.9.3+
Python: 3.13+
"""

from __future__ import annotations

from typing import Any

from homeassistant.components.device_tracker import SourceType, TrackerEntity
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import ATTR_CHIP_ID, ATTR_PET_ID, SIGNAL_CHIP_REGISTERED
from .entity import ChipTrackEntity
from .runtime_data import ChipTrackConfigEntry
from .tracker import ChipTrackingService
from .types import ChipRecord, PetLocation


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ChipTrackConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up a tracker for every chip, including chips registered later."""
    service = entry.runtime_data.service

    async_add_entities(
        (ChipTrackerEntity(service, chip) for chip in await service.async_get_chips()),
        update_before_add=True,
    )

    @callback
    def _async_chip_registered(chip: ChipRecord) -> None:
        async_add_entities([ChipTrackerEntity(service, chip)], update_before_add=True)

    entry.async_on_unload(
        async_dispatcher_connect(hass, SIGNAL_CHIP_REGISTERED, _async_chip_registered)
    )


class ChipTrackerEntity(ChipTrackEntity, TrackerEntity):
    """Latest location of a chipped pet."""

    _attr_name = None

    def __init__(self, service: ChipTrackingService, chip: ChipRecord) -> None:
        super().__init__(service, chip)
        self._attr_unique_id = f"{chip.id}_tracker"
        self._location: PetLocation | None = None

    @property
    def source_type(self) -> SourceType:
        """Return the source of the location."""
        return SourceType.GPS

    @property
    def latitude(self) -> float | None:
        """Return the latest latitude."""
        return self._location.latitude if self._location else None

    @property
    def longitude(self) -> float | None:
        """Return the latest longitude."""
        return self._location.longitude if self._location else None

    @property
    def location_accuracy(self) -> float:
        """Return the accuracy of the latest fix in meters."""
        return self._location.accuracy if self._location else 0

    @property
    def battery_level(self) -> int | None:
        """Return the chip battery reported with the latest fix."""
        return self._location.battery if self._location else None

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return chip and fix details."""
        attributes: dict[str, Any] = {
            ATTR_PET_ID: self._pet_id,
            ATTR_CHIP_ID: self._chip_id,
        }
        if self._location is not None:
            attributes["signal"] = self._location.signal.value
            attributes["last_fix"] = self._location.timestamp.isoformat()
        return attributes

    async def async_update(self) -> None:
        """Read the latest stored location of the pet."""
        self._location = await self._service.async_get_pet_location(self._pet_id)
