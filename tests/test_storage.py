"""Tests for the ChipTrack storage layer."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

import pytest

from custom_components.chiptrack.const import (
    STORAGE_KEY_ALERTS,
    STORAGE_KEY_CHIPS,
    STORAGE_KEY_LOCATIONS,
    STORAGE_KEY_ZONE_MEMBERSHIP,
)
from custom_components.chiptrack.exceptions import StorageError
from custom_components.chiptrack.storage import ChipTrackStorage
from custom_components.chiptrack.types import (
    Alert,
    AlertPriority,
    AlertType,
    LocationFix,
    PetLocation,
    SignalQuality,
)

from .common import InMemoryStore, make_chip


def _location(pet_id: str, latitude: float) -> PetLocation:
    return PetLocation(
        latitude=latitude,
        longitude=-99.1332,
        timestamp=datetime(2025, 3, 1, 12, 0, tzinfo=UTC),
        accuracy=10.0,
        battery=80,
        signal=SignalQuality.MEDIUM,
        pet_id=pet_id,
        pet_name=pet_id,
        chip_id=f"chip_{pet_id}",
    )


async def test_empty_store_reads_as_empty_collections(
    storage: ChipTrackStorage,
) -> None:
    """Never-written collections read as empty lists."""
    assert await storage.async_get_chips() == []
    assert await storage.async_get_locations() == []
    assert await storage.async_get_safe_zones() == []
    assert await storage.async_get_alerts() == []
    assert await storage.async_get_memberships() == []


async def test_records_survive_a_save_and_load(
    storage: ChipTrackStorage, stores: dict[str, InMemoryStore]
) -> None:
    """Saved records are persisted as JSON arrays and parsed back."""
    chip = make_chip(last_seen=datetime(2025, 3, 1, 11, 0, tzinfo=UTC))
    await storage.async_save_chips([chip])

    raw = stores[STORAGE_KEY_CHIPS].data
    assert isinstance(raw, list)
    assert raw[0]["code"] == "CHIP-1234-5678-9012"
    assert raw[0]["registered_at"] == "2025-01-01T00:00:00+00:00"

    assert await storage.async_get_chips() == [chip]


async def test_alert_location_is_stored_without_pet_metadata(
    storage: ChipTrackStorage, stores: dict[str, InMemoryStore]
) -> None:
    """Alerts embed the bare fix of the location that raised them."""
    location = _location("p1", 19.44)
    alert = Alert(
        id="alert_1",
        pet_id="p1",
        chip_id="chip_p1",
        type=AlertType.ZONE_EXIT,
        message="left",
        timestamp=location.timestamp,
        priority=AlertPriority.HIGH,
        location=location,
    )
    await storage.async_save_alerts([alert])

    assert "pet_id" not in stores[STORAGE_KEY_ALERTS].data[0]["location"]
    (loaded,) = await storage.async_get_alerts()
    assert loaded.location == location.as_fix()
    assert type(loaded.location) is LocationFix


class TestFailOpenReads:
    """Reads degrade to an empty collection."""

    async def test_backend_error(
        self,
        storage: ChipTrackStorage,
        stores: dict[str, InMemoryStore],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        stores[STORAGE_KEY_CHIPS].fail_on_load = True

        with caplog.at_level(logging.WARNING):
            assert await storage.async_get_chips() == []
        assert "Failed to read" in caplog.text

    async def test_payload_is_not_a_list(
        self, storage: ChipTrackStorage, stores: dict[str, InMemoryStore]
    ) -> None:
        stores[STORAGE_KEY_LOCATIONS].data = {"p1": "garbage"}

        assert await storage.async_get_locations() == []

    @pytest.mark.parametrize(
        "record",
        [
            {"id": "chip_1"},
            {
                "id": "chip_1",
                "code": "CHIP-1234-5678-9012",
                "pet_id": "p1",
                "is_active": "yes",
                "registered_at": "2025-01-01T00:00:00+00:00",
            },
            {
                "id": "chip_1",
                "code": "CHIP-1234-5678-9012",
                "pet_id": "p1",
                "is_active": True,
                "registered_at": "not a date",
            },
            "chip_1",
        ],
    )
    async def test_malformed_record(
        self,
        storage: ChipTrackStorage,
        stores: dict[str, InMemoryStore],
        record: object,
    ) -> None:
        stores[STORAGE_KEY_CHIPS].data = [record]

        assert await storage.async_get_chips() == []


async def test_failed_write_raises_storage_error(
    storage: ChipTrackStorage,
    stores: dict[str, InMemoryStore],
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Write failures are logged and surface as StorageError."""
    stores[STORAGE_KEY_CHIPS].fail_on_save = True

    with caplog.at_level(logging.ERROR), pytest.raises(StorageError) as err:
        await storage.async_save_chips([make_chip()])

    assert err.value.collection == STORAGE_KEY_CHIPS
    assert err.value.to_dict()["category"] == "storage"
    assert "Failed to save" in caplog.text


async def test_upsert_location_keeps_one_location_per_pet(
    storage: ChipTrackStorage,
) -> None:
    """A new fix for a pet overwrites its previous fix."""
    await storage.async_upsert_location(_location("p1", 19.40))
    await storage.async_upsert_location(_location("p2", 19.41))
    await storage.async_upsert_location(_location("p1", 19.42))

    locations = {location.pet_id: location for location in await storage.async_get_locations()}
    assert len(locations) == 2
    assert locations["p1"].latitude == 19.42
    assert locations["p2"].latitude == 19.41


async def test_membership_defaults_to_outside_and_skips_unchanged_writes(
    storage: ChipTrackStorage, stores: dict[str, InMemoryStore]
) -> None:
    """Unknown pairs read as outside; rewriting the same flag is a no-op."""
    assert await storage.async_get_membership("p1", "zone_1") is False

    await storage.async_set_membership("p1", "zone_1", True)
    await storage.async_set_membership("p1", "zone_1", True)
    assert stores[STORAGE_KEY_ZONE_MEMBERSHIP].save_count == 1
    assert await storage.async_get_membership("p1", "zone_1") is True

    await storage.async_set_membership("p1", "zone_1", False)
    assert await storage.async_get_membership("p1", "zone_1") is False
    assert stores[STORAGE_KEY_ZONE_MEMBERSHIP].save_count == 2


async def test_concurrent_updates_are_not_lost(storage: ChipTrackStorage) -> None:
    """Overlapping read-modify-write cycles on one collection serialize."""

    def _append(pet_id: str):
        def _mutate(chips: list) -> bool:
            chips.append(make_chip(pet_id, code=f"CHIP-0000-0000-{pet_id[1:]:0>4}"))
            return True

        return _mutate

    await asyncio.gather(
        *(storage.async_update(STORAGE_KEY_CHIPS, _append(f"p{i}")) for i in range(10))
    )

    assert sorted(chip.pet_id for chip in await storage.async_get_chips()) == sorted(
        f"p{i}" for i in range(10)
    )


async def test_update_without_change_does_not_write(
    storage: ChipTrackStorage, stores: dict[str, InMemoryStore]
) -> None:
    """Mutators returning False leave the backend untouched."""
    await storage.async_update(STORAGE_KEY_CHIPS, lambda chips: False)

    assert stores[STORAGE_KEY_CHIPS].save_count == 0


async def test_update_after_failed_read_keeps_existing_records(
    storage: ChipTrackStorage,
    stores: dict[str, InMemoryStore],
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A transient read failure never overwrites the stored collection."""
    await storage.async_save_chips([make_chip("p1")])
    stores[STORAGE_KEY_CHIPS].fail_on_load = True

    def _append(chips: list) -> bool:
        chips.append(make_chip("p2", code="CHIP-2222-2222-2222"))
        return True

    with caplog.at_level(logging.ERROR), pytest.raises(StorageError):
        await storage.async_update(STORAGE_KEY_CHIPS, _append)

    assert "Not updating" in caplog.text
    assert stores[STORAGE_KEY_CHIPS].save_count == 1

    stores[STORAGE_KEY_CHIPS].fail_on_load = False
    assert [chip.pet_id for chip in await storage.async_get_chips()] == ["p1"]
