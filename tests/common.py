"""Test doubles shared by the ChipTrack tests."""

from __future__ import annotations

import asyncio
import copy
from datetime import UTC, datetime, timedelta
from typing import Any

from custom_components.chiptrack.exceptions import LocationUnavailableError
from custom_components.chiptrack.ingestion import FixSource
from custom_components.chiptrack.types import ChipRecord, LocationFix, SignalQuality

ZONE_CENTER = (19.4326, -99.1332)


class InMemoryStore:
    """Store backend keeping a deep copy of the last saved payload."""

    def __init__(self, key: str) -> None:
        self.key = key
        self.data: Any = None
        self.save_count = 0
        self.fail_on_load = False
        self.fail_on_save = False

    async def async_load(self) -> Any:
        await asyncio.sleep(0)
        if self.fail_on_load:
            raise OSError("disk unreadable")
        return copy.deepcopy(self.data)

    async def async_save(self, data: Any) -> None:
        await asyncio.sleep(0)
        if self.fail_on_save:
            raise OSError("disk full")
        self.save_count += 1
        self.data = copy.deepcopy(data)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class ScriptedFixSource(FixSource):
    """Fix source returning queued positions, then repeating the last one."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._queue: list[tuple[float, float, int]] = []
        self._last: tuple[float, float, int] = (*ZONE_CENTER, 90)
        self.unavailable_for: set[str] = set()
        self.calls: list[str] = []

    def queue(self, latitude: float, longitude: float, battery: int = 90) -> None:
        self._queue.append((latitude, longitude, battery))

    async def async_produce_fix(self, chip: ChipRecord) -> LocationFix:
        self.calls.append(chip.pet_id)
        if chip.pet_id in self.unavailable_for:
            raise LocationUnavailableError(chip.id, "scripted outage")
        if self._queue:
            self._last = self._queue.pop(0)
        latitude, longitude, battery = self._last
        return LocationFix(
            latitude=latitude,
            longitude=longitude,
            timestamp=self._clock(),
            accuracy=8.0,
            battery=battery,
            signal=SignalQuality.STRONG,
        )


def make_chip(
    pet_id: str = "p1",
    *,
    chip_id: str | None = None,
    code: str = "CHIP-1234-5678-9012",
    is_active: bool = True,
    registered_at: datetime | None = None,
    last_seen: datetime | None = None,
) -> ChipRecord:
    """Build a chip record for tests."""
    return ChipRecord(
        id=chip_id or f"chip_{pet_id}",
        code=code,
        pet_id=pet_id,
        pet_name=pet_id.title(),
        owner_id="owner",
        is_active=is_active,
        registered_at=registered_at or datetime(2025, 1, 1, tzinfo=UTC),
        last_seen=last_seen,
    )
