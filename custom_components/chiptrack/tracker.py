"""Chip tracking service for the ChipTrack integration.

The service wires the storage, ingestion, alert engine, status aggregator and
scheduler together and exposes the operations used by the Home Assistant
surface (services and entities): chip registration and verification, safe
zone management, location and status queries, alert queries and the tracking
lifecycle.

Quality Scale: Platinum target
Home Assistant: 2025.9.3+
Python: 3.13+
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util

from .alerts import AlertEngine, AlertSink
from .const import (
    DEFAULT_OWNER_ID,
    DEMO_CHIP_CODE,
    DEMO_CHIP_ID,
    DEMO_OWNER_ID,
    DEMO_PET_ID,
    DEMO_PET_NAME,
    MAX_SAFE_ZONE_RADIUS,
    MIN_SAFE_ZONE_RADIUS,
    STORAGE_KEY_CHIPS,
    STORAGE_KEY_SAFE_ZONES,
)
from .exceptions import (
    ChipNotFoundError,
    ChipRegistrationError,
    ChipTrackError,
    InvalidSafeZoneError,
)
from .geofencing import GeofenceEvaluator
from .ingestion import FixSource, LocationIngestor
from .scheduler import TrackingScheduler
from .status import ChipStatusAggregator
from .storage import ChipTrackStorage
from .types import (
    ChipRecord,
    ChipStatus,
    ChipVerification,
    PetLocation,
    SafeZone,
    ZoneNotifications,
)
from .utils import generate_id, is_valid_chip_code, validate_coordinates

_LOGGER = logging.getLogger(__name__)

ChipListener = Callable[[ChipRecord], None]
UpdateListener = Callable[[], None]


class ChipTrackingService:
    """Facade over the tracking engine."""

    def __init__(
        self,
        storage: ChipTrackStorage,
        source: FixSource,
        *,
        hass: HomeAssistant | None = None,
        sink: AlertSink | None = None,
        clock: Callable[[], datetime] = dt_util.utcnow,
        seed_demo_chip: bool = True,
    ) -> None:
        """Initialize the tracking service.

        Args:
            storage: Persistent store
            source: Where location fixes come from
            hass: Home Assistant instance; without it no scheduler is created
            sink: Alert delivery target
            clock: Source of the current time
            seed_demo_chip: Seed a demo chip into an empty store on initialize
        """
        self.storage = storage
        self._clock = clock
        self._seed_demo_chip = seed_demo_chip

        self.evaluator = GeofenceEvaluator(storage)
        self.alerts = AlertEngine(storage, self.evaluator, sink=sink, clock=clock)
        self.status = ChipStatusAggregator(storage, clock=clock)
        self.ingestor = LocationIngestor(storage, self.alerts, source)
        self.scheduler: TrackingScheduler | None = (
            TrackingScheduler(
                hass,
                storage,
                self.ingestor,
                on_tick_complete=self.notify_updated,
            )
            if hass is not None
            else None
        )

        self._update_listeners: list[UpdateListener] = []
        self._chip_listeners: list[ChipListener] = []

    # Listeners

    def add_update_listener(self, listener: UpdateListener) -> Callable[[], None]:
        """Call ``listener`` after every tick or manual ingestion."""
        self._update_listeners.append(listener)
        return lambda: self._update_listeners.remove(listener)

    def add_chip_listener(self, listener: ChipListener) -> Callable[[], None]:
        """Call ``listener`` with every newly registered chip."""
        self._chip_listeners.append(listener)
        return lambda: self._chip_listeners.remove(listener)

    def notify_updated(self) -> None:
        """Tell update listeners that tracking data changed."""
        for listener in list(self._update_listeners):
            listener()

    # Lifecycle

    async def async_initialize(self) -> None:
        """Seed demo data into an empty store and start tracking."""
        if self._seed_demo_chip and not await self.storage.async_get_chips():
            try:
                await self._async_seed_demo_chip()
            except ChipTrackError as err:
                _LOGGER.error("Failed to seed demo chip: %s", err)

        if self.scheduler is not None:
            self.scheduler.start()

    def stop_tracking(self) -> None:
        """Stop the recurring tracking tick."""
        if self.scheduler is not None:
            self.scheduler.stop()

    async def _async_seed_demo_chip(self) -> None:
        chip = ChipRecord(
            id=DEMO_CHIP_ID,
            code=DEMO_CHIP_CODE,
            pet_id=DEMO_PET_ID,
            pet_name=DEMO_PET_NAME,
            owner_id=DEMO_OWNER_ID,
            is_active=True,
            registered_at=datetime(2024, 10, 1, tzinfo=UTC),
            last_seen=self._clock(),
        )
        await self.storage.async_save_chips([chip])
        _LOGGER.info("Seeded demo chip %s for %s", chip.code, chip.pet_name)
        await self._async_start_tracking_for_chip(chip)

    async def _async_start_tracking_for_chip(self, chip: ChipRecord) -> None:
        """Ingest an initial fix; failures are logged, not raised."""
        try:
            await self.ingestor.async_ingest(chip)
        except ChipTrackError as err:
            _LOGGER.warning("Initial fix for pet %s failed: %s", chip.pet_id, err)
        else:
            self.notify_updated()

    # Chips

    async def async_register_chip(
        self,
        chip_code: str,
        pet_id: str,
        is_verified: bool,
        *,
        pet_name: str = "",
        owner_id: str = DEFAULT_OWNER_ID,
        tracker_entity_id: str | None = None,
    ) -> ChipRecord:
        """Register a chip for a pet.

        A verified chip becomes the pet's only active chip: any other active
        chip of the pet is deactivated, and an initial fix is ingested.

        Raises:
            ChipRegistrationError: If the code is malformed or already registered
        """
        if not is_valid_chip_code(chip_code):
            raise ChipRegistrationError(chip_code, "expected CHIP-####-####-####")

        now = self._clock()
        chip = ChipRecord(
            id=generate_id("chip"),
            code=chip_code,
            pet_id=pet_id,
            pet_name=pet_name,
            owner_id=owner_id,
            is_active=is_verified,
            registered_at=now,
            last_seen=now,
            tracker_entity_id=tracker_entity_id,
        )
        duplicate = False
        replaced: list[str] = []

        def _register(chips: list[ChipRecord]) -> bool:
            nonlocal duplicate
            if any(existing.code == chip_code for existing in chips):
                duplicate = True
                return False
            if is_verified:
                for existing in chips:
                    if existing.pet_id == pet_id and existing.is_active:
                        existing.is_active = False
                        replaced.append(existing.id)
            chips.append(chip)
            return True

        await self.storage.async_update(STORAGE_KEY_CHIPS, _register)
        if duplicate:
            raise ChipRegistrationError(chip_code, "already registered")

        _LOGGER.info(
            "Registered chip %s for pet %s (verified=%s)", chip_code, pet_id, is_verified
        )
        if replaced:
            _LOGGER.info("Deactivated replaced chips %s for pet %s", replaced, pet_id)

        if is_verified:
            await self._async_start_tracking_for_chip(chip)

        # After the initial fix so new entities start with a location
        for listener in list(self._chip_listeners):
            listener(chip)

        return chip

    async def async_verify_chip_code(self, chip_code: str) -> ChipVerification:
        """Check the code format and whether it is already registered."""
        if not is_valid_chip_code(chip_code):
            return ChipVerification(is_valid=False, is_registered=False)

        chips = await self.storage.async_get_chips()
        return ChipVerification(
            is_valid=True,
            is_registered=any(chip.code == chip_code for chip in chips),
        )

    async def async_deactivate_chip(self, chip_id: str) -> bool:
        """Deactivate a chip. Returns False when the chip is unknown."""
        found = False

        def _deactivate(chips: list[ChipRecord]) -> bool:
            nonlocal found
            for chip in chips:
                if chip.id == chip_id:
                    found = True
                    if not chip.is_active:
                        return False
                    chip.is_active = False
                    return True
            return False

        await self.storage.async_update(STORAGE_KEY_CHIPS, _deactivate)
        if found:
            self.notify_updated()
        return found

    async def async_get_chips(self) -> list[ChipRecord]:
        """Return every registered chip."""
        return await self.storage.async_get_chips()

    async def async_get_chip_by_pet_id(self, pet_id: str) -> ChipRecord | None:
        """Return the pet's active chip, or its most recent chip."""
        chips = [chip for chip in await self.storage.async_get_chips() if chip.pet_id == pet_id]
        active = [chip for chip in chips if chip.is_active]
        if active:
            return active[0]
        return chips[-1] if chips else None

    # Locations

    async def async_get_pet_location(self, pet_id: str) -> PetLocation | None:
        """Return the latest location of a pet."""
        return next(
            (
                location
                for location in await self.storage.async_get_locations()
                if location.pet_id == pet_id
            ),
            None,
        )

    async def async_get_pets_with_location(self) -> list[PetLocation]:
        """Return the latest locations of pets with an active chip."""
        active_pets = {
            chip.pet_id for chip in await self.storage.async_get_chips() if chip.is_active
        }
        return [
            location
            for location in await self.storage.async_get_locations()
            if location.pet_id in active_pets
        ]

    async def async_simulate_tracking(self, pet_id: str) -> PetLocation:
        """Ingest one fix for the pet outside the regular tick.

        Raises:
            ChipNotFoundError: If the pet has no chip
        """
        chip = await self.async_get_chip_by_pet_id(pet_id)
        if chip is None:
            raise ChipNotFoundError(pet_id)

        location = await self.ingestor.async_ingest(chip)
        self.notify_updated()
        return location

    async def async_get_chip_status(self, pet_id: str) -> ChipStatus | None:
        """Return the derived status of the pet's chip."""
        return await self.status.async_chip_status(pet_id)

    # Safe zones

    async def async_create_safe_zone(
        self,
        *,
        pet_id: str,
        name: str,
        center_latitude: float,
        center_longitude: float,
        radius: float,
        notifications: ZoneNotifications | None = None,
        is_active: bool = True,
    ) -> SafeZone:
        """Create a safe zone for a pet.

        Raises:
            InvalidSafeZoneError: If the center or radius is out of range
        """
        if not validate_coordinates(center_latitude, center_longitude):
            raise InvalidSafeZoneError(
                "center", (center_latitude, center_longitude), "out of range"
            )
        if not MIN_SAFE_ZONE_RADIUS <= radius <= MAX_SAFE_ZONE_RADIUS:
            raise InvalidSafeZoneError(
                "radius",
                radius,
                f"must be between {MIN_SAFE_ZONE_RADIUS} and {MAX_SAFE_ZONE_RADIUS} meters",
            )

        zone = SafeZone(
            id=generate_id("zone"),
            pet_id=pet_id,
            name=name,
            center_latitude=center_latitude,
            center_longitude=center_longitude,
            radius=radius,
            is_active=is_active,
            created_at=self._clock(),
            notifications=notifications or ZoneNotifications(),
        )

        def _append(zones: list[SafeZone]) -> bool:
            zones.append(zone)
            return True

        await self.storage.async_update(STORAGE_KEY_SAFE_ZONES, _append)
        _LOGGER.info(
            "Created safe zone '%s' for %s: %.6f,%.6f radius %.0fm",
            name,
            pet_id,
            center_latitude,
            center_longitude,
            radius,
        )
        return zone

    async def async_get_safe_zones(self, pet_id: str) -> list[SafeZone]:
        """Return the active safe zones of a pet."""
        return await self.evaluator.async_active_zones(pet_id)

    async def async_disable_safe_zone(self, zone_id: str) -> bool:
        """Soft-disable a safe zone. Returns False when the zone is unknown."""
        found = False

        def _disable(zones: list[SafeZone]) -> bool:
            nonlocal found
            for zone in zones:
                if zone.id == zone_id:
                    found = True
                    if not zone.is_active:
                        return False
                    zone.is_active = False
                    return True
            return False

        await self.storage.async_update(STORAGE_KEY_SAFE_ZONES, _disable)
        return found
