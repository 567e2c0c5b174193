"""Services for the ChipTrack integration.

Services resolve the tracking service of the loaded config entry and map
engine errors onto Home Assistant's service errors: validation failures
become ``ServiceValidationError`` so the frontend shows them as user input
problems, everything else propagates as ``HomeAssistantError``.

Quality Scale: Platinum target
Home Assistant: 2025.9.3+
Python: 3.13+
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import voluptuous as vol
from homeassistant.config_entries import ConfigEntryState
from homeassistant.const import ATTR_LATITUDE, ATTR_LONGITUDE, ATTR_NAME
from homeassistant.core import (
    HomeAssistant,
    ServiceCall,
    ServiceResponse,
    SupportsResponse,
    callback,
)
from homeassistant.exceptions import ServiceValidationError
from homeassistant.helpers import config_validation as cv

from .const import (
    ATTR_ALERT_ID,
    ATTR_CHIP_CODE,
    ATTR_CHIP_ID,
    ATTR_IS_VERIFIED,
    ATTR_LIMIT,
    ATTR_NOTIFY_EMAIL,
    ATTR_NOTIFY_ON_ENTRY,
    ATTR_NOTIFY_ON_EXIT,
    ATTR_NOTIFY_PUSH,
    ATTR_OWNER_ID,
    ATTR_PET_ID,
    ATTR_PET_NAME,
    ATTR_RADIUS,
    ATTR_TRACKER_ENTITY_ID,
    ATTR_ZONE_ID,
    DEFAULT_OWNER_ID,
    DOMAIN,
    MAX_SAFE_ZONE_RADIUS,
    MIN_SAFE_ZONE_RADIUS,
    SERVICE_CLEANUP_ALERTS,
    SERVICE_CREATE_SAFE_ZONE,
    SERVICE_DEACTIVATE_CHIP,
    SERVICE_DISABLE_SAFE_ZONE,
    SERVICE_GET_ALERTS,
    SERVICE_GET_CHIP_STATUS,
    SERVICE_MARK_ALERT_READ,
    SERVICE_MARK_ALL_ALERTS_READ,
    SERVICE_REGISTER_CHIP,
    SERVICE_SIMULATE_TRACKING,
    SERVICE_VERIFY_CHIP_CODE,
)
from .exceptions import ChipTrackError, ErrorCategory
from .tracker import ChipTrackingService
from .types import ChipRecord, PetLocation, SafeZone, ZoneNotifications

_LOGGER = logging.getLogger(__name__)

_ServiceHandler = Callable[
    [ChipTrackingService, ServiceCall], Awaitable[ServiceResponse]
]

SERVICE_REGISTER_CHIP_SCHEMA = vol.Schema(
    {
        vol.Required(ATTR_CHIP_CODE): cv.string,
        vol.Required(ATTR_PET_ID): cv.string,
        vol.Optional(ATTR_IS_VERIFIED, default=True): cv.boolean,
        vol.Optional(ATTR_PET_NAME, default=""): cv.string,
        vol.Optional(ATTR_OWNER_ID, default=DEFAULT_OWNER_ID): cv.string,
        vol.Optional(ATTR_TRACKER_ENTITY_ID): cv.entity_id,
    }
)

SERVICE_VERIFY_CHIP_CODE_SCHEMA = vol.Schema(
    {vol.Required(ATTR_CHIP_CODE): cv.string}
)

SERVICE_DEACTIVATE_CHIP_SCHEMA = vol.Schema({vol.Required(ATTR_CHIP_ID): cv.string})

SERVICE_CREATE_SAFE_ZONE_SCHEMA = vol.Schema(
    {
        vol.Required(ATTR_PET_ID): cv.string,
        vol.Required(ATTR_NAME): cv.string,
        vol.Required(ATTR_LATITUDE): cv.latitude,
        vol.Required(ATTR_LONGITUDE): cv.longitude,
        vol.Required(ATTR_RADIUS): vol.All(
            vol.Coerce(float),
            vol.Range(min=MIN_SAFE_ZONE_RADIUS, max=MAX_SAFE_ZONE_RADIUS),
        ),
        vol.Optional(ATTR_NOTIFY_ON_EXIT, default=True): cv.boolean,
        vol.Optional(ATTR_NOTIFY_ON_ENTRY, default=False): cv.boolean,
        vol.Optional(ATTR_NOTIFY_EMAIL, default=False): cv.boolean,
        vol.Optional(ATTR_NOTIFY_PUSH, default=True): cv.boolean,
    }
)

SERVICE_DISABLE_SAFE_ZONE_SCHEMA = vol.Schema({vol.Required(ATTR_ZONE_ID): cv.string})

SERVICE_PET_SCHEMA = vol.Schema({vol.Required(ATTR_PET_ID): cv.string})

SERVICE_GET_ALERTS_SCHEMA = vol.Schema(
    {
        vol.Required(ATTR_PET_ID): cv.string,
        vol.Optional(ATTR_LIMIT): cv.positive_int,
    }
)

SERVICE_MARK_ALERT_READ_SCHEMA = vol.Schema({vol.Required(ATTR_ALERT_ID): cv.string})

SERVICE_CLEANUP_ALERTS_SCHEMA = vol.Schema({})


def _chip_as_dict(chip: ChipRecord) -> dict[str, Any]:
    return dict(chip.to_storage_payload())


def _location_as_dict(location: PetLocation) -> dict[str, Any]:
    return dict(location.to_storage_payload())


def _zone_as_dict(zone: SafeZone) -> dict[str, Any]:
    return dict(zone.to_storage_payload())


def _get_tracking_service(hass: HomeAssistant) -> ChipTrackingService:
    """Return the tracking service of the loaded config entry.

    Raises:
        ServiceValidationError: If ChipTrack is not loaded
    """
    for entry in hass.config_entries.async_entries(DOMAIN):
        if entry.state is ConfigEntryState.LOADED:
            return entry.runtime_data.service
    raise ServiceValidationError(
        "ChipTrack is not loaded",
        translation_domain=DOMAIN,
        translation_key="not_loaded",
    )


@callback
def async_setup_services(hass: HomeAssistant) -> None:
    """Register the ChipTrack services."""

    def _guard(
        handler: _ServiceHandler,
    ) -> Callable[[ServiceCall], Awaitable[ServiceResponse]]:
        """Resolve the tracking service and translate engine errors."""

        async def _wrapper(call: ServiceCall) -> ServiceResponse:
            service = _get_tracking_service(hass)
            try:
                return await handler(service, call)
            except ChipTrackError as err:
                _LOGGER.debug("Service %s failed: %s", call.service, err.to_dict())
                if err.category is ErrorCategory.VALIDATION:
                    raise ServiceValidationError(str(err)) from err
                raise

        return _wrapper

    @_guard
    async def register_chip_service(
        service: ChipTrackingService, call: ServiceCall
    ) -> ServiceResponse:
        """Handle register chip service call."""
        chip = await service.async_register_chip(
            call.data[ATTR_CHIP_CODE],
            call.data[ATTR_PET_ID],
            call.data[ATTR_IS_VERIFIED],
            pet_name=call.data[ATTR_PET_NAME],
            owner_id=call.data[ATTR_OWNER_ID],
            tracker_entity_id=call.data.get(ATTR_TRACKER_ENTITY_ID),
        )
        return {"chip": _chip_as_dict(chip)} if call.return_response else None

    @_guard
    async def verify_chip_code_service(
        service: ChipTrackingService, call: ServiceCall
    ) -> ServiceResponse:
        """Handle verify chip code service call."""
        result = await service.async_verify_chip_code(call.data[ATTR_CHIP_CODE])
        return {"is_valid": result.is_valid, "is_registered": result.is_registered}

    @_guard
    async def deactivate_chip_service(
        service: ChipTrackingService, call: ServiceCall
    ) -> ServiceResponse:
        """Handle deactivate chip service call."""
        chip_id = call.data[ATTR_CHIP_ID]
        if not await service.async_deactivate_chip(chip_id):
            raise ServiceValidationError(f"Unknown chip {chip_id}")
        return None

    @_guard
    async def create_safe_zone_service(
        service: ChipTrackingService, call: ServiceCall
    ) -> ServiceResponse:
        """Handle create safe zone service call."""
        zone = await service.async_create_safe_zone(
            pet_id=call.data[ATTR_PET_ID],
            name=call.data[ATTR_NAME],
            center_latitude=call.data[ATTR_LATITUDE],
            center_longitude=call.data[ATTR_LONGITUDE],
            radius=call.data[ATTR_RADIUS],
            notifications=ZoneNotifications(
                on_exit=call.data[ATTR_NOTIFY_ON_EXIT],
                on_entry=call.data[ATTR_NOTIFY_ON_ENTRY],
                email=call.data[ATTR_NOTIFY_EMAIL],
                push=call.data[ATTR_NOTIFY_PUSH],
            ),
        )
        return {"zone": _zone_as_dict(zone)} if call.return_response else None

    @_guard
    async def disable_safe_zone_service(
        service: ChipTrackingService, call: ServiceCall
    ) -> ServiceResponse:
        """Handle disable safe zone service call."""
        zone_id = call.data[ATTR_ZONE_ID]
        if not await service.async_disable_safe_zone(zone_id):
            raise ServiceValidationError(f"Unknown safe zone {zone_id}")
        return None

    @_guard
    async def simulate_tracking_service(
        service: ChipTrackingService, call: ServiceCall
    ) -> ServiceResponse:
        """Handle simulate tracking service call."""
        location = await service.async_simulate_tracking(call.data[ATTR_PET_ID])
        return {"location": _location_as_dict(location)} if call.return_response else None

    @_guard
    async def get_alerts_service(
        service: ChipTrackingService, call: ServiceCall
    ) -> ServiceResponse:
        """Handle get alerts service call."""
        pet_id = call.data[ATTR_PET_ID]
        alerts = await service.alerts.async_alerts_for_pet(
            pet_id, call.data.get(ATTR_LIMIT)
        )
        return {
            "alerts": [alert.as_dict() for alert in alerts],
            "unread": await service.alerts.async_unread_count(pet_id),
        }

    @_guard
    async def mark_alert_read_service(
        service: ChipTrackingService, call: ServiceCall
    ) -> ServiceResponse:
        """Handle mark alert read service call."""
        alert_id = call.data[ATTR_ALERT_ID]
        if not await service.alerts.async_mark_as_read(alert_id):
            raise ServiceValidationError(f"Unknown alert {alert_id}")
        service.notify_updated()
        return None

    @_guard
    async def mark_all_alerts_read_service(
        service: ChipTrackingService, call: ServiceCall
    ) -> ServiceResponse:
        """Handle mark all alerts read service call."""
        marked = await service.alerts.async_mark_all_as_read(call.data[ATTR_PET_ID])
        service.notify_updated()
        return {"marked": marked} if call.return_response else None

    @_guard
    async def cleanup_alerts_service(
        service: ChipTrackingService, call: ServiceCall
    ) -> ServiceResponse:
        """Handle cleanup alerts service call."""
        removed = await service.alerts.async_cleanup_old_alerts()
        return {"removed": removed} if call.return_response else None

    @_guard
    async def get_chip_status_service(
        service: ChipTrackingService, call: ServiceCall
    ) -> ServiceResponse:
        """Handle get chip status service call."""
        pet_id = call.data[ATTR_PET_ID]
        status = await service.async_get_chip_status(pet_id)
        chip = await service.async_get_chip_by_pet_id(pet_id)
        location = await service.async_get_pet_location(pet_id)
        return {
            "status": status.as_dict() if status else None,
            "chip": _chip_as_dict(chip) if chip else None,
            "location": _location_as_dict(location) if location else None,
        }

    registrations = (
        (
            SERVICE_REGISTER_CHIP,
            register_chip_service,
            SERVICE_REGISTER_CHIP_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            SERVICE_VERIFY_CHIP_CODE,
            verify_chip_code_service,
            SERVICE_VERIFY_CHIP_CODE_SCHEMA,
            SupportsResponse.ONLY,
        ),
        (
            SERVICE_DEACTIVATE_CHIP,
            deactivate_chip_service,
            SERVICE_DEACTIVATE_CHIP_SCHEMA,
            SupportsResponse.NONE,
        ),
        (
            SERVICE_CREATE_SAFE_ZONE,
            create_safe_zone_service,
            SERVICE_CREATE_SAFE_ZONE_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            SERVICE_DISABLE_SAFE_ZONE,
            disable_safe_zone_service,
            SERVICE_DISABLE_SAFE_ZONE_SCHEMA,
            SupportsResponse.NONE,
        ),
        (
            SERVICE_SIMULATE_TRACKING,
            simulate_tracking_service,
            SERVICE_PET_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            SERVICE_GET_ALERTS,
            get_alerts_service,
            SERVICE_GET_ALERTS_SCHEMA,
            SupportsResponse.ONLY,
        ),
        (
            SERVICE_MARK_ALERT_READ,
            mark_alert_read_service,
            SERVICE_MARK_ALERT_READ_SCHEMA,
            SupportsResponse.NONE,
        ),
        (
            SERVICE_MARK_ALL_ALERTS_READ,
            mark_all_alerts_read_service,
            SERVICE_PET_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            SERVICE_CLEANUP_ALERTS,
            cleanup_alerts_service,
            SERVICE_CLEANUP_ALERTS_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            SERVICE_GET_CHIP_STATUS,
            get_chip_status_service,
            SERVICE_PET_SCHEMA,
            SupportsResponse.ONLY,
        ),
    )

    for name, handler, schema, supports_response in registrations:
        hass.services.async_register(
            DOMAIN,
            name,
            handler,
            schema=schema,
            supports_response=supports_response,
        )

    _LOGGER.debug("Registered %d ChipTrack services", len(registrations))
