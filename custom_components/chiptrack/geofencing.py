"""Safe zone membership state machine.

Each (pet, zone) pair is either outside or inside. A new fix is compared with
the single persisted membership flag of the pair; only the immediately prior
state is kept, so an excursion that starts and ends between two fixes is not
observed. The flag is written back after every evaluation whether or not a
notification fires.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .storage import ChipTrackStorage
from .types import LocationFix, PetLocation, SafeZone
from .utils import calculate_distance

_LOGGER = logging.getLogger(__name__)


class GeofenceEvent(Enum):
    """Membership transitions of a pet for a zone."""

    ENTERED = "entered"
    LEFT = "left"


@dataclass(frozen=True)
class GeofenceTransition:
    """A detected transition and whether the zone wants it notified."""

    zone: SafeZone
    event: GeofenceEvent
    distance: float
    notify: bool


def zone_contains(zone: SafeZone, fix: LocationFix) -> bool:
    """Return True when ``fix`` lies within the zone's radius."""
    return distance_to_zone(zone, fix) <= zone.radius


def distance_to_zone(zone: SafeZone, fix: LocationFix) -> float:
    """Return the distance in meters from the zone center to ``fix``."""
    return calculate_distance(
        fix.latitude,
        fix.longitude,
        zone.center_latitude,
        zone.center_longitude,
    )


class GeofenceEvaluator:
    """Detect safe zone entry and exit against persisted membership flags."""

    def __init__(self, storage: ChipTrackStorage) -> None:
        self._storage = storage

    async def async_active_zones(self, pet_id: str) -> list[SafeZone]:
        """Return the active safe zones of a pet."""
        return [
            zone
            for zone in await self._storage.async_get_safe_zones()
            if zone.pet_id == pet_id and zone.is_active
        ]

    async def async_evaluate(self, location: PetLocation) -> list[GeofenceTransition]:
        """Evaluate a new fix against every active zone of the pet.

        Args:
            location: Latest location of the pet

        Returns:
            Transitions detected by this fix, in zone order
        """
        transitions: list[GeofenceTransition] = []

        for zone in await self.async_active_zones(location.pet_id):
            distance = distance_to_zone(zone, location)
            is_inside = distance <= zone.radius
            was_inside = await self._storage.async_get_membership(
                location.pet_id, zone.id
            )

            if was_inside and not is_inside:
                transitions.append(
                    GeofenceTransition(
                        zone=zone,
                        event=GeofenceEvent.LEFT,
                        distance=distance,
                        notify=zone.notifications.on_exit,
                    )
                )
            elif not was_inside and is_inside:
                transitions.append(
                    GeofenceTransition(
                        zone=zone,
                        event=GeofenceEvent.ENTERED,
                        distance=distance,
                        notify=zone.notifications.on_entry,
                    )
                )

            await self._storage.async_set_membership(
                location.pet_id, zone.id, is_inside
            )

            _LOGGER.debug(
                "Pet %s is %.1fm from zone '%s' (radius %.1fm, inside=%s, was=%s)",
                location.pet_id,
                distance,
                zone.name,
                zone.radius,
                is_inside,
                was_inside,
            )

        return transitions
