"""Alert engine for the ChipTrack integration.

Creates, throttles, stores and serves location alerts. Alerts are kept newest
first; low battery and signal loss alerts are throttled per pet, and alerts
older than the retention window are purged by a cleanup sweep. Every created
alert is handed to a pluggable :class:`AlertSink` for delivery.

Quality Scale: Platinum target
Home Assistant: 2025.9.3+
Python: 3.13+
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta

from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util

from .const import (
    ALERT_RETENTION,
    EVENT_ALERT,
    LOW_BATTERY_COOLDOWN,
    LOW_BATTERY_THRESHOLD,
    SIGNAL_LOSS_COOLDOWN,
    SIGNAL_LOSS_THRESHOLD,
    STORAGE_KEY_ALERTS,
)
from .geofencing import GeofenceEvaluator, GeofenceEvent, GeofenceTransition
from .storage import ChipTrackStorage
from .types import Alert, AlertPriority, AlertType, LocationFix, PetLocation
from .utils import generate_id

_LOGGER = logging.getLogger(__name__)


class AlertSink(ABC):
    """Delivery target for newly created alerts."""

    @abstractmethod
    async def async_dispatch(self, alert: Alert) -> None:
        """Deliver ``alert``."""


class LoggingAlertSink(AlertSink):
    """Reference sink that only logs the alert message."""

    async def async_dispatch(self, alert: Alert) -> None:
        _LOGGER.info(
            "Location alert [%s/%s] for %s: %s",
            alert.type.value,
            alert.priority.value,
            alert.pet_id,
            alert.message,
        )


class HomeAssistantAlertSink(LoggingAlertSink):
    """Fire a Home Assistant event and optionally call a notify service."""

    def __init__(self, hass: HomeAssistant, notify_service: str | None = None) -> None:
        """Initialize the sink.

        Args:
            hass: Home Assistant instance
            notify_service: ``notify`` service name (with or without the
                ``notify.`` prefix) to call for every alert
        """
        self.hass = hass
        self.notify_service = (
            notify_service.removeprefix("notify.") if notify_service else None
        )

    async def async_dispatch(self, alert: Alert) -> None:
        await super().async_dispatch(alert)
        self.hass.bus.async_fire(EVENT_ALERT, alert.as_dict())

        if not self.notify_service:
            return
        if not self.hass.services.has_service("notify", self.notify_service):
            _LOGGER.warning(
                "Notify service notify.%s not found, alert %s not pushed",
                self.notify_service,
                alert.id,
            )
            return

        await self.hass.services.async_call(
            "notify",
            self.notify_service,
            {
                "title": "Pet location alert",
                "message": alert.message,
                "data": {
                    "alert_id": alert.id,
                    "pet_id": alert.pet_id,
                    "priority": alert.priority.value,
                },
            },
            blocking=False,
        )


def _pet_label(location: PetLocation) -> str:
    return location.pet_name or location.pet_id


class AlertEngine:
    """Create, throttle and query location alerts."""

    def __init__(
        self,
        storage: ChipTrackStorage,
        evaluator: GeofenceEvaluator,
        *,
        sink: AlertSink | None = None,
        clock: Callable[[], datetime] = dt_util.utcnow,
    ) -> None:
        """Initialize the alert engine.

        Args:
            storage: Persistent store
            evaluator: Safe zone state machine
            sink: Delivery target, defaults to logging only
            clock: Source of the current time
        """
        self._storage = storage
        self._evaluator = evaluator
        self._sink = sink or LoggingAlertSink()
        self._clock = clock
        self._pet_locks: dict[str, asyncio.Lock] = {}

    @property
    def sink(self) -> AlertSink:
        """Return the active delivery sink."""
        return self._sink

    def set_sink(self, sink: AlertSink) -> None:
        """Replace the delivery sink."""
        self._sink = sink

    async def async_create_alert(
        self,
        *,
        pet_id: str,
        chip_id: str,
        alert_type: AlertType,
        message: str,
        priority: AlertPriority,
        location: LocationFix | None = None,
    ) -> Alert:
        """Store a new unread alert at the head of the list and dispatch it."""
        alert = Alert(
            id=generate_id("alert"),
            pet_id=pet_id,
            chip_id=chip_id,
            type=alert_type,
            message=message,
            timestamp=self._clock(),
            priority=priority,
            location=location.as_fix() if location else None,
        )

        def _prepend(alerts: list[Alert]) -> bool:
            alerts.insert(0, alert)
            return True

        await self._storage.async_update(STORAGE_KEY_ALERTS, _prepend)

        try:
            await self._sink.async_dispatch(alert)
        except Exception as err:
            _LOGGER.error("Failed to dispatch alert %s: %s", alert.id, err)

        return alert

    async def _async_last_alert(self, pet_id: str, alert_type: AlertType) -> Alert | None:
        for alert in await self.async_alerts_for_pet(pet_id):
            if alert.type is alert_type:
                return alert
        return None

    async def _async_cooldown_elapsed(
        self, pet_id: str, alert_type: AlertType, cooldown: timedelta
    ) -> bool:
        last = await self._async_last_alert(pet_id, alert_type)
        return last is None or self._clock() - last.timestamp > cooldown

    async def _async_check_safe_zone_violations(
        self, location: PetLocation
    ) -> list[Alert]:
        alerts: list[Alert] = []
        transitions = await self._evaluator.async_evaluate(location)
        for transition in transitions:
            if not transition.notify:
                continue
            alerts.append(await self._async_zone_alert(location, transition))
        return alerts

    async def _async_zone_alert(
        self, location: PetLocation, transition: GeofenceTransition
    ) -> Alert:
        name = _pet_label(location)
        if transition.event is GeofenceEvent.LEFT:
            return await self.async_create_alert(
                pet_id=location.pet_id,
                chip_id=location.chip_id,
                alert_type=AlertType.ZONE_EXIT,
                message=f'{name} left the safe zone "{transition.zone.name}"',
                priority=AlertPriority.HIGH,
                location=location,
            )
        return await self.async_create_alert(
            pet_id=location.pet_id,
            chip_id=location.chip_id,
            alert_type=AlertType.ZONE_ENTRY,
            message=f'{name} entered the safe zone "{transition.zone.name}"',
            priority=AlertPriority.MEDIUM,
            location=location,
        )

    async def _async_check_battery_level(self, location: PetLocation) -> Alert | None:
        if location.battery > LOW_BATTERY_THRESHOLD:
            return None
        if not await self._async_cooldown_elapsed(
            location.pet_id, AlertType.LOW_BATTERY, LOW_BATTERY_COOLDOWN
        ):
            _LOGGER.debug("Low battery alert for %s throttled", location.pet_id)
            return None

        return await self.async_create_alert(
            pet_id=location.pet_id,
            chip_id=location.chip_id,
            alert_type=AlertType.LOW_BATTERY,
            message=f"{_pet_label(location)}'s chip battery is low ({location.battery}%)",
            priority=AlertPriority.MEDIUM,
            location=location,
        )

    async def _async_check_signal_status(self, location: PetLocation) -> Alert | None:
        if self._clock() - location.timestamp <= SIGNAL_LOSS_THRESHOLD:
            return None
        if not await self._async_cooldown_elapsed(
            location.pet_id, AlertType.NO_SIGNAL, SIGNAL_LOSS_COOLDOWN
        ):
            _LOGGER.debug("Signal loss alert for %s throttled", location.pet_id)
            return None

        return await self.async_create_alert(
            pet_id=location.pet_id,
            chip_id=location.chip_id,
            alert_type=AlertType.NO_SIGNAL,
            message=f"Lost signal from {_pet_label(location)}'s chip",
            priority=AlertPriority.CRITICAL,
            location=location,
        )

    def _pet_lock(self, pet_id: str) -> asyncio.Lock:
        return self._pet_locks.setdefault(pet_id, asyncio.Lock())

    async def async_check_safe_zone_violations(self, location: PetLocation) -> list[Alert]:
        """Raise zone exit/entry alerts for transitions caused by ``location``."""
        async with self._pet_lock(location.pet_id):
            return await self._async_check_safe_zone_violations(location)

    async def async_check_battery_level(self, location: PetLocation) -> Alert | None:
        """Raise a low battery alert, at most once per cooldown window."""
        async with self._pet_lock(location.pet_id):
            return await self._async_check_battery_level(location)

    async def async_check_signal_status(self, location: PetLocation) -> Alert | None:
        """Raise a signal loss alert when the fix is stale, throttled per pet."""
        async with self._pet_lock(location.pet_id):
            return await self._async_check_signal_status(location)

    async def async_evaluate(self, location: PetLocation) -> list[Alert]:
        """Run every check for a freshly ingested location.

        Checks for one pet never interleave: each reads the last alert or
        membership flag and writes the outcome while holding the pet's lock.
        """
        async with self._pet_lock(location.pet_id):
            alerts = await self._async_check_safe_zone_violations(location)
            if battery_alert := await self._async_check_battery_level(location):
                alerts.append(battery_alert)
            if signal_alert := await self._async_check_signal_status(location):
                alerts.append(signal_alert)
        return alerts

    async def async_alerts_for_pet(
        self, pet_id: str, limit: int | None = None
    ) -> list[Alert]:
        """Return the alerts of a pet, newest first."""
        alerts = [
            alert
            for alert in await self._storage.async_get_alerts()
            if alert.pet_id == pet_id
        ]
        return alerts[:limit] if limit else alerts

    async def async_unread_count(self, pet_id: str | None = None) -> int:
        """Count unread alerts, optionally for a single pet."""
        return sum(
            1
            for alert in await self._storage.async_get_alerts()
            if not alert.is_read and (pet_id is None or alert.pet_id == pet_id)
        )

    async def async_mark_as_read(self, alert_id: str) -> bool:
        """Mark one alert as read. Returns False for an unknown id."""
        found = False

        def _mark(alerts: list[Alert]) -> bool:
            nonlocal found
            for alert in alerts:
                if alert.id == alert_id:
                    found = True
                    if alert.is_read:
                        return False
                    alert.is_read = True
                    return True
            return False

        await self._storage.async_update(STORAGE_KEY_ALERTS, _mark)
        return found

    async def async_mark_all_as_read(self, pet_id: str) -> int:
        """Mark every unread alert of a pet as read and return how many."""
        marked = 0

        def _mark(alerts: list[Alert]) -> bool:
            nonlocal marked
            for alert in alerts:
                if alert.pet_id == pet_id and not alert.is_read:
                    alert.is_read = True
                    marked += 1
            return marked > 0

        await self._storage.async_update(STORAGE_KEY_ALERTS, _mark)
        return marked

    async def async_cleanup_old_alerts(self) -> int:
        """Delete alerts older than the retention window.

        The collection is only written back when something was pruned.

        Returns:
            Number of alerts removed
        """
        cutoff = self._clock() - ALERT_RETENTION
        removed = 0

        def _prune(alerts: list[Alert]) -> bool:
            nonlocal removed
            kept = [alert for alert in alerts if alert.timestamp > cutoff]
            removed = len(alerts) - len(kept)
            alerts[:] = kept
            return removed > 0

        await self._storage.async_update(STORAGE_KEY_ALERTS, _prune)
        if removed:
            _LOGGER.info("Removed %d alerts older than %s", removed, cutoff.isoformat())
        return removed
