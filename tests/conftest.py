"""Shared fixtures for ChipTrack tests.

Engine tests run against an in-memory store and a controllable clock; Home
Assistant tests use the ``hass`` fixture from
pytest-homeassistant-custom-component.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from custom_components.chiptrack.storage import COLLECTION_KEYS, ChipTrackStorage
from custom_components.chiptrack.tracker import ChipTrackingService

from .common import FakeClock, InMemoryStore, ScriptedFixSource


@pytest.fixture
def clock() -> FakeClock:
    """Return a clock frozen at a fixed instant."""
    return FakeClock(datetime(2025, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def stores() -> dict[str, InMemoryStore]:
    """Return one in-memory backend per collection."""
    return {key: InMemoryStore(key) for key in COLLECTION_KEYS}


@pytest.fixture
def storage(stores: dict[str, InMemoryStore]) -> ChipTrackStorage:
    """Return storage backed by the in-memory stores."""
    return ChipTrackStorage(stores.__getitem__)


@pytest.fixture
def fix_source(clock: FakeClock) -> ScriptedFixSource:
    """Return a scripted fix source."""
    return ScriptedFixSource(clock)


@pytest.fixture
def tracking_service(
    storage: ChipTrackStorage, fix_source: ScriptedFixSource, clock: FakeClock
) -> ChipTrackingService:
    """Return a tracking service without a scheduler or demo data."""
    return ChipTrackingService(storage, fix_source, clock=clock, seed_demo_chip=False)
