"""Sensor platform for the ChipTrack integration."""

from __future__ import annotations

from typing import Any

from homeassistant.components.sensor import SensorDeviceClass, SensorEntity
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import SIGNAL_CHIP_REGISTERED
from .entity import ChipTrackEntity
from .runtime_data import ChipTrackConfigEntry
from .tracker import ChipTrackingService
from .types import ChipRecord, ChipState, ChipStatus


def _entities_for_chip(
    service: ChipTrackingService, chip: ChipRecord
) -> list[SensorEntity]:
    return [ChipStatusSensor(service, chip), UnreadAlertsSensor(service, chip)]


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ChipTrackConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up status and alert sensors for every chip."""
    service = entry.runtime_data.service

    entities: list[SensorEntity] = []
    for chip in await service.async_get_chips():
        entities.extend(_entities_for_chip(service, chip))
    async_add_entities(entities, update_before_add=True)

    @callback
    def _async_chip_registered(chip: ChipRecord) -> None:
        async_add_entities(_entities_for_chip(service, chip), update_before_add=True)

    entry.async_on_unload(
        async_dispatcher_connect(hass, SIGNAL_CHIP_REGISTERED, _async_chip_registered)
    )


class ChipStatusSensor(ChipTrackEntity, SensorEntity):
    """Derived health of a pet's chip."""

    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = [state.value for state in ChipState]
    _attr_translation_key = "chip_status"

    def __init__(self, service: ChipTrackingService, chip: ChipRecord) -> None:
        super().__init__(service, chip)
        self._attr_unique_id = f"{chip.id}_status"
        self._status: ChipStatus | None = None

    @property
    def native_value(self) -> str | None:
        """Return the derived chip state."""
        return self._status.status.value if self._status else None

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the rest of the status snapshot."""
        if self._status is None:
            return {}
        attributes = self._status.as_dict()
        attributes.pop("status")
        return attributes

    async def async_update(self) -> None:
        """Recompute the chip status."""
        self._status = await self._service.async_get_chip_status(self._pet_id)


class UnreadAlertsSensor(ChipTrackEntity, SensorEntity):
    """Number of unread alerts for a pet."""

    _attr_translation_key = "unread_alerts"

    def __init__(self, service: ChipTrackingService, chip: ChipRecord) -> None:
        super().__init__(service, chip)
        self._attr_unique_id = f"{chip.id}_unread_alerts"
        self._attr_native_value = 0
        self._latest: str | None = None

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the latest alert message."""
        return {"latest_alert": self._latest}

    async def async_update(self) -> None:
        """Count the pet's unread alerts."""
        self._attr_native_value = await self._service.alerts.async_unread_count(
            self._pet_id
        )
        alerts = await self._service.alerts.async_alerts_for_pet(self._pet_id, 1)
        self._latest = alerts[0].message if alerts else None
