"""Set up and manage the ChipTrack integration lifecycle."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from homeassistant.core import HomeAssistant
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.helpers.event import async_track_time_interval
from homeassistant.helpers.storage import Store
from homeassistant.helpers.typing import ConfigType

from .alerts import HomeAssistantAlertSink
from .const import (
    ALERT_CLEANUP_INTERVAL,
    CONF_DEBUG_LOGGING,
    CONF_FALLBACK_LATITUDE,
    CONF_FALLBACK_LONGITUDE,
    CONF_FIX_SOURCE,
    CONF_NOTIFY_SERVICE,
    CONF_OWNER_ENTITY_ID,
    CONF_SEED_DEMO_CHIP,
    DEFAULT_FALLBACK_LATITUDE,
    DEFAULT_FALLBACK_LONGITUDE,
    DOMAIN,
    FIX_SOURCE_DEVICE_TRACKER,
    FIX_SOURCE_SIMULATED,
    PLATFORMS,
    SIGNAL_CHIP_REGISTERED,
    SIGNAL_TRACKING_UPDATED,
    STORAGE_VERSION,
)
from .ingestion import (
    DeviceTrackerFixSource,
    FixSource,
    OwnerPositionProvider,
    SimulatedFixSource,
)
from .runtime_data import ChipTrackConfigEntry, ChipTrackRuntimeData
from .services import async_setup_services
from .storage import ChipTrackStorage
from .tracker import ChipTrackingService
from .types import ChipRecord

_LOGGER = logging.getLogger(__name__)

CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)

_DEFAULT_LOGGER_LEVEL: int | None = None


def _entry_settings(entry: ChipTrackConfigEntry) -> dict[str, Any]:
    """Return the active settings; saved options replace the initial data."""
    return dict(entry.options or entry.data)


def _enable_debug_logging(settings: Mapping[str, Any]) -> bool:
    """Raise the package logger to DEBUG when requested by the entry."""
    global _DEFAULT_LOGGER_LEVEL

    if not settings.get(CONF_DEBUG_LOGGING):
        return False

    package_logger = logging.getLogger(__package__)
    if package_logger.level != logging.DEBUG:
        _DEFAULT_LOGGER_LEVEL = package_logger.level
        package_logger.setLevel(logging.DEBUG)
    return True


def _restore_logging() -> None:
    """Restore the package logger level changed by debug logging."""
    global _DEFAULT_LOGGER_LEVEL

    if _DEFAULT_LOGGER_LEVEL is None:
        return
    logging.getLogger(__package__).setLevel(_DEFAULT_LOGGER_LEVEL)
    _DEFAULT_LOGGER_LEVEL = None


def _build_fix_source(hass: HomeAssistant, settings: Mapping[str, Any]) -> FixSource:
    """Select the fix source configured for the entry."""
    source = settings.get(CONF_FIX_SOURCE, FIX_SOURCE_SIMULATED)
    if source == FIX_SOURCE_DEVICE_TRACKER:
        return DeviceTrackerFixSource(hass)

    return SimulatedFixSource(
        OwnerPositionProvider(hass, settings.get(CONF_OWNER_ENTITY_ID)),
        fallback=(
            float(settings.get(CONF_FALLBACK_LATITUDE, DEFAULT_FALLBACK_LATITUDE)),
            float(settings.get(CONF_FALLBACK_LONGITUDE, DEFAULT_FALLBACK_LONGITUDE)),
        ),
    )


async def async_setup(hass: HomeAssistant, config: ConfigType) -> bool:
    """Register the integration services."""
    async_setup_services(hass)
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ChipTrackConfigEntry) -> bool:
    """Set up ChipTrack from a config entry."""
    settings = _entry_settings(entry)
    if _enable_debug_logging(settings):
        _LOGGER.debug("Debug logging enabled for %s", entry.entry_id)

    storage = ChipTrackStorage(lambda key: Store(hass, STORAGE_VERSION, key))
    service = ChipTrackingService(
        storage,
        _build_fix_source(hass, settings),
        hass=hass,
        sink=HomeAssistantAlertSink(hass, settings.get(CONF_NOTIFY_SERVICE)),
        seed_demo_chip=settings.get(CONF_SEED_DEMO_CHIP, True),
    )
    entry.runtime_data = ChipTrackRuntimeData(service=service)

    entry.async_on_unload(
        service.add_update_listener(
            lambda: async_dispatcher_send(hass, SIGNAL_TRACKING_UPDATED)
        )
    )

    def _chip_registered(chip: ChipRecord) -> None:
        async_dispatcher_send(hass, SIGNAL_CHIP_REGISTERED, chip)

    entry.async_on_unload(service.add_chip_listener(_chip_registered))

    await service.async_initialize()
    entry.async_on_unload(service.stop_tracking)

    async def _async_cleanup_alerts(now: datetime) -> None:
        await service.alerts.async_cleanup_old_alerts()

    entry.async_on_unload(
        async_track_time_interval(
            hass,
            _async_cleanup_alerts,
            ALERT_CLEANUP_INTERVAL,
            name=f"{DOMAIN} alert cleanup",
        )
    )
    entry.async_on_unload(entry.add_update_listener(_async_update_listener))

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    _LOGGER.info(
        "ChipTrack set up with %s fixes",
        settings.get(CONF_FIX_SOURCE, FIX_SOURCE_SIMULATED),
    )
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ChipTrackConfigEntry) -> bool:
    """Unload a config entry."""
    unloaded = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unloaded:
        _restore_logging()
    return unloaded


async def _async_update_listener(
    hass: HomeAssistant, entry: ChipTrackConfigEntry
) -> None:
    """Reload the entry when its options change."""
    await hass.config_entries.async_reload(entry.entry_id)
