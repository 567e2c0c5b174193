"""Persistent key-value store for the ChipTrack integration.

Five collections (chips, locations, safe zones, alerts and zone membership
flags) are each persisted as a JSON array in their own Home Assistant store.
Reads fail open: a backend exception or a malformed payload degrades to an
empty collection so the tracking loop keeps running. Writes fail loudly: the
error is logged and re-raised as :class:`StorageError`. An update whose
read hit a backend failure is refused rather than saved over the unreadable
records.

Every save is a full-collection overwrite. Read-modify-write cycles go through
:meth:`ChipTrackStorage.async_update`, which holds a per-collection lock so
overlapping writers (a manual simulation racing a scheduled tick) are
serialized instead of losing updates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any, Final, Protocol

from .const import (
    STORAGE_KEY_ALERTS,
    STORAGE_KEY_CHIPS,
    STORAGE_KEY_LOCATIONS,
    STORAGE_KEY_SAFE_ZONES,
    STORAGE_KEY_ZONE_MEMBERSHIP,
)
from .exceptions import StorageError
from .types import (
    Alert,
    ChipRecord,
    PetLocation,
    SafeZone,
    ZoneMembership,
)

_LOGGER = logging.getLogger(__name__)

COLLECTION_KEYS: Final[tuple[str, ...]] = (
    STORAGE_KEY_CHIPS,
    STORAGE_KEY_LOCATIONS,
    STORAGE_KEY_SAFE_ZONES,
    STORAGE_KEY_ALERTS,
    STORAGE_KEY_ZONE_MEMBERSHIP,
)

_PARSERS: Final[dict[str, Callable[[Any], Any]]] = {
    STORAGE_KEY_CHIPS: ChipRecord.from_storage_payload,
    STORAGE_KEY_LOCATIONS: PetLocation.from_storage_payload,
    STORAGE_KEY_SAFE_ZONES: SafeZone.from_storage_payload,
    STORAGE_KEY_ALERTS: Alert.from_storage_payload,
    STORAGE_KEY_ZONE_MEMBERSHIP: ZoneMembership.from_storage_payload,
}


class StorageBackend(Protocol):
    """Minimal interface of :class:`homeassistant.helpers.storage.Store`."""

    async def async_load(self) -> Any:
        """Return the persisted data or ``None``."""

    async def async_save(self, data: Any) -> None:
        """Persist ``data``."""


StoreFactory = Callable[[str], StorageBackend]


class ChipTrackStorage:
    """Typed access to the persisted ChipTrack collections."""

    def __init__(self, store_factory: StoreFactory) -> None:
        """Initialize the storage.

        Args:
            store_factory: Builds the backend for a storage key
        """
        self._stores: dict[str, StorageBackend] = {
            key: store_factory(key) for key in COLLECTION_KEYS
        }
        self._locks: dict[str, asyncio.Lock] = {
            key: asyncio.Lock() for key in COLLECTION_KEYS
        }

    async def _async_read(self, key: str) -> list[Any] | None:
        """Load and parse a collection.

        Returns:
            The parsed records, an empty list for a missing or malformed
            payload, or None when the backend itself failed
        """
        try:
            raw = await self._stores[key].async_load()
        except Exception as err:
            _LOGGER.warning("Failed to read %s, using empty collection: %s", key, err)
            return None

        if raw is None:
            return []
        if not isinstance(raw, list):
            _LOGGER.warning(
                "Malformed %s payload (%s), using empty collection",
                key,
                type(raw).__name__,
            )
            return []

        parser = _PARSERS[key]
        try:
            return [parser(item) for item in raw]
        except (KeyError, TypeError, ValueError, AttributeError) as err:
            _LOGGER.warning("Malformed %s record, using empty collection: %s", key, err)
            return []

    async def _async_load(self, key: str) -> list[Any]:
        """Load a collection, degrading to an empty list."""
        records = await self._async_read(key)
        return [] if records is None else records

    async def _async_save(self, key: str, records: Sequence[Any]) -> None:
        """Overwrite a whole collection."""
        payload = [record.to_storage_payload() for record in records]
        try:
            await self._stores[key].async_save(payload)
        except Exception as err:
            _LOGGER.error("Failed to save %s: %s", key, err)
            raise StorageError(key, str(err)) from err

    async def async_update(
        self, key: str, mutator: Callable[[list[Any]], bool]
    ) -> None:
        """Read-modify-write a collection under its lock.

        Args:
            key: Storage key of the collection
            mutator: Mutates the loaded records in place and returns whether
                the collection changed; unchanged collections are not written

        Raises:
            StorageError: If the collection could not be read, so saving
                would overwrite records that are only temporarily unreadable
        """
        async with self._locks[key]:
            records = await self._async_read(key)
            if records is None:
                _LOGGER.error("Not updating %s: current records could not be read", key)
                raise StorageError(key, "current records could not be read")
            if mutator(records):
                await self._async_save(key, records)

    # Chips

    async def async_get_chips(self) -> list[ChipRecord]:
        """Return all chip records."""
        return await self._async_load(STORAGE_KEY_CHIPS)

    async def async_save_chips(self, chips: Sequence[ChipRecord]) -> None:
        """Overwrite all chip records."""
        async with self._locks[STORAGE_KEY_CHIPS]:
            await self._async_save(STORAGE_KEY_CHIPS, chips)

    # Locations

    async def async_get_locations(self) -> list[PetLocation]:
        """Return the latest location of every pet."""
        return await self._async_load(STORAGE_KEY_LOCATIONS)

    async def async_save_locations(self, locations: Sequence[PetLocation]) -> None:
        """Overwrite all pet locations."""
        async with self._locks[STORAGE_KEY_LOCATIONS]:
            await self._async_save(STORAGE_KEY_LOCATIONS, locations)

    async def async_upsert_location(self, location: PetLocation) -> None:
        """Replace the stored location of ``location.pet_id``."""

        def _replace(locations: list[PetLocation]) -> bool:
            for index, existing in enumerate(locations):
                if existing.pet_id == location.pet_id:
                    locations[index] = location
                    return True
            locations.append(location)
            return True

        await self.async_update(STORAGE_KEY_LOCATIONS, _replace)

    # Safe zones

    async def async_get_safe_zones(self) -> list[SafeZone]:
        """Return all safe zones, active or not."""
        return await self._async_load(STORAGE_KEY_SAFE_ZONES)

    async def async_save_safe_zones(self, zones: Sequence[SafeZone]) -> None:
        """Overwrite all safe zones."""
        async with self._locks[STORAGE_KEY_SAFE_ZONES]:
            await self._async_save(STORAGE_KEY_SAFE_ZONES, zones)

    # Alerts

    async def async_get_alerts(self) -> list[Alert]:
        """Return all alerts, newest first."""
        return await self._async_load(STORAGE_KEY_ALERTS)

    async def async_save_alerts(self, alerts: Sequence[Alert]) -> None:
        """Overwrite all alerts."""
        async with self._locks[STORAGE_KEY_ALERTS]:
            await self._async_save(STORAGE_KEY_ALERTS, alerts)

    # Zone membership

    async def async_get_memberships(self) -> list[ZoneMembership]:
        """Return all persisted membership flags."""
        return await self._async_load(STORAGE_KEY_ZONE_MEMBERSHIP)

    async def async_save_memberships(
        self, memberships: Sequence[ZoneMembership]
    ) -> None:
        """Overwrite all membership flags."""
        async with self._locks[STORAGE_KEY_ZONE_MEMBERSHIP]:
            await self._async_save(STORAGE_KEY_ZONE_MEMBERSHIP, memberships)

    async def async_get_membership(self, pet_id: str, zone_id: str) -> bool:
        """Return whether the pet was inside the zone, False when unknown."""
        for membership in await self.async_get_memberships():
            if membership.pet_id == pet_id and membership.zone_id == zone_id:
                return membership.inside
        return False

    async def async_set_membership(
        self, pet_id: str, zone_id: str, inside: bool
    ) -> None:
        """Persist the membership flag of a (pet, zone) pair."""

        def _set(memberships: list[ZoneMembership]) -> bool:
            for membership in memberships:
                if membership.pet_id == pet_id and membership.zone_id == zone_id:
                    if membership.inside == inside:
                        return False
                    membership.inside = inside
                    return True
            memberships.append(ZoneMembership(pet_id, zone_id, inside))
            return True

        await self.async_update(STORAGE_KEY_ZONE_MEMBERSHIP, _set)
