"""Recurring tracking tick for the ChipTrack integration."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback
from homeassistant.helpers.event import async_track_time_interval

from .const import DOMAIN, TRACKING_INTERVAL
from .ingestion import LocationIngestor
from .storage import ChipTrackStorage

_LOGGER = logging.getLogger(__name__)


class TrackingScheduler:
    """Drive ingestion for every active chip on a fixed interval.

    Pets are processed sequentially within a tick and a failing pet never
    stops the others. Stopping only prevents future ticks; an in-flight tick
    runs to completion.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        storage: ChipTrackStorage,
        ingestor: LocationIngestor,
        *,
        interval: timedelta = TRACKING_INTERVAL,
        on_tick_complete: Callable[[], None] | None = None,
    ) -> None:
        self.hass = hass
        self._storage = storage
        self._ingestor = ingestor
        self._interval = interval
        self._on_tick_complete = on_tick_complete
        self._unsub: CALLBACK_TYPE | None = None
        self._tick_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        """Return True while the recurring timer is armed."""
        return self._unsub is not None

    @callback
    def start(self) -> None:
        """Arm the recurring timer; a no-op when already running."""
        if self._unsub is not None:
            return
        self._unsub = async_track_time_interval(
            self.hass,
            self._async_handle_interval,
            self._interval,
            name=f"{DOMAIN} tracking",
        )
        _LOGGER.info(
            "Started chip tracking every %d seconds",
            self._interval.total_seconds(),
        )

    @callback
    def stop(self) -> None:
        """Cancel the recurring timer; safe to call when not running."""
        if self._unsub is None:
            return
        self._unsub()
        self._unsub = None
        _LOGGER.info("Stopped chip tracking")

    async def _async_handle_interval(self, now: datetime) -> None:
        await self.async_run_tick()

    async def async_run_tick(self) -> int:
        """Ingest one fix for every active chip.

        Returns:
            Number of chips that produced a fix
        """
        if self._tick_lock.locked():
            _LOGGER.debug("Previous tracking tick still running, skipping")
            return 0

        async with self._tick_lock:
            chips = [chip for chip in await self._storage.async_get_chips() if chip.is_active]
            ingested = 0

            for chip in chips:
                try:
                    await self._ingestor.async_ingest(chip)
                except Exception as err:
                    _LOGGER.error(
                        "Tracking failed for pet %s (chip %s): %s",
                        chip.pet_id,
                        chip.id,
                        err,
                    )
                    continue
                ingested += 1

            _LOGGER.debug("Tracking tick ingested %d/%d chips", ingested, len(chips))

        if self._on_tick_complete is not None:
            self._on_tick_complete()
        return ingested
