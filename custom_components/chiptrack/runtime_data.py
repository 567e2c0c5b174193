"""Runtime data attached to a loaded ChipTrack config entry."""

from __future__ import annotations

from dataclasses import dataclass

from homeassistant.config_entries import ConfigEntry

from .tracker import ChipTrackingService


@dataclass
class ChipTrackRuntimeData:
    """Objects owned by a loaded config entry."""

    service: ChipTrackingService


type ChipTrackConfigEntry = ConfigEntry[ChipTrackRuntimeData]
