"""Tests for the ChipTrack alert engine."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from custom_components.chiptrack.alerts import (
    AlertEngine,
    AlertSink,
    HomeAssistantAlertSink,
    LoggingAlertSink,
)
from custom_components.chiptrack.const import EVENT_ALERT, STORAGE_KEY_ALERTS
from custom_components.chiptrack.geofencing import GeofenceEvaluator
from custom_components.chiptrack.storage import ChipTrackStorage
from custom_components.chiptrack.types import (
    Alert,
    AlertPriority,
    AlertType,
    PetLocation,
    SafeZone,
    SignalQuality,
)
from homeassistant.core import HomeAssistant, ServiceCall
from pytest_homeassistant_custom_component.common import async_capture_events

from .common import ZONE_CENTER, FakeClock, InMemoryStore


class RecordingSink(AlertSink):
    """Sink remembering every dispatched alert."""

    def __init__(self) -> None:
        self.alerts: list[Alert] = []

    async def async_dispatch(self, alert: Alert) -> None:
        self.alerts.append(alert)


@pytest.fixture
def sink() -> RecordingSink:
    """Return a recording sink."""
    return RecordingSink()


@pytest.fixture
def engine(
    storage: ChipTrackStorage, sink: RecordingSink, clock: FakeClock
) -> AlertEngine:
    """Return an alert engine over the in-memory storage."""
    return AlertEngine(storage, GeofenceEvaluator(storage), sink=sink, clock=clock)


def _location(
    clock: FakeClock,
    *,
    latitude: float = ZONE_CENTER[0],
    battery: int = 90,
    age: timedelta = timedelta(0),
    pet_id: str = "p1",
) -> PetLocation:
    return PetLocation(
        latitude=latitude,
        longitude=ZONE_CENTER[1],
        timestamp=clock() - age,
        accuracy=10.0,
        battery=battery,
        signal=SignalQuality.MEDIUM,
        pet_id=pet_id,
        pet_name="Max",
        chip_id=f"chip_{pet_id}",
    )


async def _create(engine: AlertEngine, pet_id: str = "p1") -> Alert:
    return await engine.async_create_alert(
        pet_id=pet_id,
        chip_id=f"chip_{pet_id}",
        alert_type=AlertType.FOUND,
        message="found",
        priority=AlertPriority.LOW,
    )


async def test_created_alerts_are_unread_newest_first_and_dispatched(
    engine: AlertEngine, sink: RecordingSink, clock: FakeClock
) -> None:
    """New alerts go to the head of the list."""
    first = await _create(engine)
    clock.advance(minutes=1)
    second = await _create(engine)

    alerts = await engine.async_alerts_for_pet("p1")
    assert [alert.id for alert in alerts] == [second.id, first.id]
    assert not any(alert.is_read for alert in alerts)
    assert sink.alerts == [first, second]


async def test_sink_failure_does_not_lose_the_alert(
    storage: ChipTrackStorage, clock: FakeClock
) -> None:
    """A failing sink is logged; the alert stays stored."""
    failing = RecordingSink()
    failing.async_dispatch = AsyncMock(side_effect=RuntimeError("push down"))
    engine = AlertEngine(storage, GeofenceEvaluator(storage), sink=failing, clock=clock)

    alert = await _create(engine)

    assert [a.id for a in await storage.async_get_alerts()] == [alert.id]


async def test_set_sink_replaces_delivery_target(
    engine: AlertEngine, sink: RecordingSink
) -> None:
    """Swapping the sink routes later alerts to the new target."""
    replacement = RecordingSink()
    engine.set_sink(replacement)

    await _create(engine)

    assert engine.sink is replacement
    assert sink.alerts == []
    assert len(replacement.alerts) == 1


class TestSafeZoneAlerts:
    """Zone exit and entry alerts."""

    @pytest.fixture
    async def zone(self, storage: ChipTrackStorage) -> SafeZone:
        zone = SafeZone(
            id="zone_home",
            pet_id="p1",
            name="Home",
            center_latitude=ZONE_CENTER[0],
            center_longitude=ZONE_CENTER[1],
            radius=300,
        )
        await storage.async_save_safe_zones([zone])
        return zone

    async def test_exit_raises_one_high_priority_alert(
        self, engine: AlertEngine, zone: SafeZone, clock: FakeClock
    ) -> None:
        assert await engine.async_check_safe_zone_violations(_location(clock)) == []

        (alert,) = await engine.async_check_safe_zone_violations(
            _location(clock, latitude=ZONE_CENTER[0] + 0.01)
        )
        assert alert.type is AlertType.ZONE_EXIT
        assert alert.priority is AlertPriority.HIGH
        assert alert.message == 'Max left the safe zone "Home"'
        assert alert.location is not None

        # Still outside: no repeat
        assert (
            await engine.async_check_safe_zone_violations(
                _location(clock, latitude=ZONE_CENTER[0] + 0.02)
            )
            == []
        )

    async def test_entry_alert_when_enabled(
        self,
        engine: AlertEngine,
        storage: ChipTrackStorage,
        zone: SafeZone,
        clock: FakeClock,
    ) -> None:
        zone.notifications.on_entry = True
        await storage.async_save_safe_zones([zone])

        (alert,) = await engine.async_check_safe_zone_violations(_location(clock))

        assert alert.type is AlertType.ZONE_ENTRY
        assert alert.priority is AlertPriority.MEDIUM


class TestBatteryAlerts:
    """Low battery alerts and their cooldown."""

    async def test_above_threshold_is_silent(
        self, engine: AlertEngine, clock: FakeClock
    ) -> None:
        assert await engine.async_check_battery_level(_location(clock, battery=21)) is None

    async def test_threshold_is_inclusive(
        self, engine: AlertEngine, clock: FakeClock
    ) -> None:
        alert = await engine.async_check_battery_level(_location(clock, battery=20))

        assert alert is not None
        assert alert.type is AlertType.LOW_BATTERY
        assert alert.priority is AlertPriority.MEDIUM
        assert "20%" in alert.message

    async def test_throttled_for_six_hours(
        self, engine: AlertEngine, clock: FakeClock
    ) -> None:
        """Fixes at 15%, 14%, 13% one hour apart raise a single alert."""
        raised = []
        for battery in (15, 14, 13):
            raised.append(
                await engine.async_check_battery_level(_location(clock, battery=battery))
            )
            clock.advance(hours=1)

        assert sum(alert is not None for alert in raised) == 1

        # Exactly six hours after the alert is still inside the cooldown
        clock.now = raised[0].timestamp + timedelta(hours=6)
        assert await engine.async_check_battery_level(_location(clock, battery=12)) is None

        clock.advance(seconds=1)
        assert await engine.async_check_battery_level(_location(clock, battery=12))

    async def test_cooldown_is_per_pet(
        self, engine: AlertEngine, clock: FakeClock
    ) -> None:
        assert await engine.async_check_battery_level(_location(clock, battery=10))
        assert await engine.async_check_battery_level(
            _location(clock, battery=10, pet_id="p2")
        )


class TestSignalAlerts:
    """Signal loss alerts."""

    async def test_recent_fix_is_silent(
        self, engine: AlertEngine, clock: FakeClock
    ) -> None:
        assert (
            await engine.async_check_signal_status(
                _location(clock, age=timedelta(minutes=60))
            )
            is None
        )

    async def test_stale_fix_raises_critical_alert_with_cooldown(
        self, engine: AlertEngine, clock: FakeClock
    ) -> None:
        stale = timedelta(minutes=61)
        alert = await engine.async_check_signal_status(_location(clock, age=stale))

        assert alert is not None
        assert alert.type is AlertType.NO_SIGNAL
        assert alert.priority is AlertPriority.CRITICAL

        clock.advance(hours=1)
        assert await engine.async_check_signal_status(_location(clock, age=stale)) is None

        clock.advance(hours=1, seconds=1)
        assert await engine.async_check_signal_status(_location(clock, age=stale))


async def test_evaluate_runs_every_check(engine: AlertEngine, clock: FakeClock) -> None:
    """A stale low battery fix raises both alerts."""
    alerts = await engine.async_evaluate(
        _location(clock, battery=5, age=timedelta(hours=2))
    )

    assert {alert.type for alert in alerts} == {
        AlertType.LOW_BATTERY,
        AlertType.NO_SIGNAL,
    }


class TestOverlappingChecks:
    """Concurrent checks for one pet honor throttles and membership."""

    async def test_battery_alert_is_raised_once(
        self, engine: AlertEngine, clock: FakeClock
    ) -> None:
        location = _location(clock, battery=10)

        results = await asyncio.gather(
            engine.async_check_battery_level(location),
            engine.async_check_battery_level(location),
        )

        assert sum(result is not None for result in results) == 1
        assert len(await engine.async_alerts_for_pet("p1")) == 1

    async def test_zone_exit_is_raised_once(
        self, engine: AlertEngine, storage: ChipTrackStorage, clock: FakeClock
    ) -> None:
        await storage.async_save_safe_zones(
            [
                SafeZone(
                    id="zone_home",
                    pet_id="p1",
                    name="Home",
                    center_latitude=ZONE_CENTER[0],
                    center_longitude=ZONE_CENTER[1],
                    radius=300,
                )
            ]
        )
        await engine.async_evaluate(_location(clock))
        outside = _location(clock, latitude=ZONE_CENTER[0] + 0.01)

        await asyncio.gather(
            engine.async_evaluate(outside), engine.async_evaluate(outside)
        )

        alerts = await engine.async_alerts_for_pet("p1")
        assert [alert.type for alert in alerts] == [AlertType.ZONE_EXIT]

    async def test_other_pets_are_not_blocked(
        self, engine: AlertEngine, clock: FakeClock
    ) -> None:
        await asyncio.gather(
            engine.async_check_battery_level(_location(clock, battery=10)),
            engine.async_check_battery_level(
                _location(clock, battery=10, pet_id="p2")
            ),
        )

        assert len(await engine.async_alerts_for_pet("p1")) == 1
        assert len(await engine.async_alerts_for_pet("p2")) == 1


class TestReadState:
    """Unread accounting."""

    async def test_unread_count_matches_unread_alerts(
        self, engine: AlertEngine
    ) -> None:
        alerts = [await _create(engine) for _ in range(3)]
        await _create(engine, "p2")

        assert await engine.async_unread_count("p1") == 3
        assert await engine.async_unread_count() == 4

        assert await engine.async_mark_as_read(alerts[0].id) is True
        assert await engine.async_unread_count("p1") == 2
        assert await engine.async_unread_count() == 3

    async def test_mark_as_read_is_idempotent(
        self,
        engine: AlertEngine,
        stores: dict[str, InMemoryStore],
    ) -> None:
        alert = await _create(engine)
        await engine.async_mark_as_read(alert.id)
        saves = stores[STORAGE_KEY_ALERTS].save_count

        assert await engine.async_mark_as_read(alert.id) is True
        assert stores[STORAGE_KEY_ALERTS].save_count == saves

    async def test_unknown_alert_is_a_noop(self, engine: AlertEngine) -> None:
        await _create(engine)

        assert await engine.async_mark_as_read("alert_missing") is False
        assert await engine.async_unread_count() == 1

    async def test_mark_all_as_read_only_touches_the_pet(
        self, engine: AlertEngine
    ) -> None:
        for _ in range(2):
            await _create(engine)
        await _create(engine, "p2")

        assert await engine.async_mark_all_as_read("p1") == 2
        assert await engine.async_mark_all_as_read("p1") == 0
        assert await engine.async_unread_count("p1") == 0
        assert await engine.async_unread_count("p2") == 1

    async def test_limit(self, engine: AlertEngine) -> None:
        for _ in range(5):
            await _create(engine)

        assert len(await engine.async_alerts_for_pet("p1", limit=2)) == 2
        assert len(await engine.async_alerts_for_pet("p1")) == 5


async def test_cleanup_removes_only_expired_alerts(
    engine: AlertEngine,
    clock: FakeClock,
    stores: dict[str, InMemoryStore],
) -> None:
    """Alerts 31 days old are purged, 29 days old are kept."""
    start = clock.now
    old = await _create(engine)
    clock.now = start + timedelta(days=2)
    recent = await _create(engine)
    clock.now = start + timedelta(days=31)

    assert await engine.async_cleanup_old_alerts() == 1
    assert [alert.id for alert in await engine.async_alerts_for_pet("p1")] == [recent.id]
    assert old.id not in {alert.id for alert in await engine.async_alerts_for_pet("p1")}

    saves = stores[STORAGE_KEY_ALERTS].save_count
    assert await engine.async_cleanup_old_alerts() == 0
    assert stores[STORAGE_KEY_ALERTS].save_count == saves


async def test_logging_sink_logs_message(caplog: pytest.LogCaptureFixture) -> None:
    """The reference sink only logs."""
    alert = Alert(
        id="alert_1",
        pet_id="p1",
        chip_id="chip_p1",
        type=AlertType.ZONE_EXIT,
        message='Max left the safe zone "Home"',
        timestamp=datetime(2025, 3, 1, tzinfo=UTC),
        priority=AlertPriority.HIGH,
    )

    with caplog.at_level(logging.INFO):
        await LoggingAlertSink().async_dispatch(alert)

    assert 'Max left the safe zone "Home"' in caplog.text


class TestHomeAssistantAlertSink:
    """Event and notify delivery."""

    @pytest.fixture
    def alert(self) -> Alert:
        return Alert(
            id="alert_1",
            pet_id="p1",
            chip_id="chip_p1",
            type=AlertType.LOW_BATTERY,
            message="Max's chip battery is low (12%)",
            timestamp=datetime(2025, 3, 1, tzinfo=UTC),
            priority=AlertPriority.MEDIUM,
        )

    async def test_fires_event(self, hass: HomeAssistant, alert: Alert) -> None:
        events = async_capture_events(hass, EVENT_ALERT)

        await HomeAssistantAlertSink(hass).async_dispatch(alert)
        await hass.async_block_till_done()

        assert len(events) == 1
        assert events[0].data["id"] == "alert_1"
        assert events[0].data["type"] == "low_battery"

    async def test_calls_notify_service(self, hass: HomeAssistant, alert: Alert) -> None:
        calls: list[ServiceCall] = []

        async def _record(call: ServiceCall) -> None:
            calls.append(call)

        hass.services.async_register("notify", "phone", _record)

        await HomeAssistantAlertSink(hass, "notify.phone").async_dispatch(alert)
        await hass.async_block_till_done()

        assert len(calls) == 1
        assert calls[0].data["message"] == alert.message
        assert calls[0].data["data"]["priority"] == "medium"

    async def test_missing_notify_service_is_logged(
        self,
        hass: HomeAssistant,
        alert: Alert,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        await HomeAssistantAlertSink(hass, "missing").async_dispatch(alert)

        assert "notify.missing not found" in caplog.text
