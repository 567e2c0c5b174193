"""Base entity for ChipTrack platforms."""

from __future__ import annotations

from homeassistant.core import callback
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity import Entity

from .const import DOMAIN, SIGNAL_TRACKING_UPDATED
from .tracker import ChipTrackingService
from .types import ChipRecord


class ChipTrackEntity(Entity):
    """Entity bound to one chip, refreshed after every tracking update.

    Entities hold no state of their own; ``async_update`` reads the current
    values from the tracking service.
    """

    _attr_has_entity_name = True
    _attr_should_poll = False

    def __init__(self, service: ChipTrackingService, chip: ChipRecord) -> None:
        self._service = service
        self._chip_id = chip.id
        self._pet_id = chip.pet_id
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, chip.id)},
            name=chip.pet_name or chip.pet_id,
            manufacturer="ChipTrack",
            model="Tracking chip",
            serial_number=chip.code,
        )

    async def async_added_to_hass(self) -> None:
        """Subscribe to tracking updates."""
        await super().async_added_to_hass()
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass, SIGNAL_TRACKING_UPDATED, self._handle_tracking_update
            )
        )

    @callback
    def _handle_tracking_update(self) -> None:
        self.async_schedule_update_ha_state(True)
