"""
Known Beacon Registry.

In-memory catalogue of surveyed beacons: where each beacon is mounted on the
plane and what RSSI it produces at 1 m. The tracker matches observations
against the registry's lookup mapping.
"""

import logging
from typing import Dict, Iterator, List, Optional

from bil_core.proto.observation import (
    BeaconKey,
    KnownBeaconCoordinate,
    RSSI_MAX_DBM,
    RSSI_MIN_DBM,
    normalize_uuid,
)

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 12


class KnownBeaconRegistry:
    """
    Registry of surveyed beacon coordinates keyed by (uuid, major, minor).

    Usage:
        registry = KnownBeaconRegistry(area_size_m=50)
        registry.add_or_update(uuid, 1, 1, x=0.0, y=0.0, calibrated_power_1m=-59)
        registry.add_or_update(uuid, 1, 2, x=10.0, y=0.0, calibrated_power_1m=-61)

        tracker.ingest(observations, registry.as_lookup(), now)
    """

    def __init__(self, area_size_m: int = 50):
        """
        Initialize registry.

        Args:
            area_size_m: Coordinates must satisfy |int(x)|, |int(y)| <= area_size_m
        """
        if area_size_m <= 0:
            raise ValueError(f"area_size_m must be positive: {area_size_m}")

        self.area_size_m = area_size_m
        self._coordinates: Dict[BeaconKey, KnownBeaconCoordinate] = {}

    def __len__(self) -> int:
        return len(self._coordinates)

    def __contains__(self, key: BeaconKey) -> bool:
        return self._key(*key) in self._coordinates

    def __iter__(self) -> Iterator[KnownBeaconCoordinate]:
        return iter(list(self._coordinates.values()))

    def add_or_update(
        self,
        uuid: str,
        major: int,
        minor: int,
        x: float,
        y: float,
        calibrated_power_1m: int,
        name: Optional[str] = None,
    ) -> KnownBeaconCoordinate:
        """
        Insert or replace a beacon coordinate.

        Args:
            uuid: Proximity UUID (any case)
            major: iBeacon major
            minor: iBeacon minor
            x: Plane X coordinate (m)
            y: Plane Y coordinate (m)
            calibrated_power_1m: Expected RSSI at 1 m (dBm)
            name: Display label, cut to 12 characters

        Returns:
            The stored coordinate

        Raises:
            ValueError: If the position is outside the area or the power is
                outside the plausible RSSI range
        """
        if abs(int(x)) > self.area_size_m or abs(int(y)) > self.area_size_m:
            raise ValueError(
                f"Beacon ({major}, {minor}) position ({x}, {y}) outside "
                f"area of +/-{self.area_size_m} m"
            )
        if not RSSI_MIN_DBM <= calibrated_power_1m <= RSSI_MAX_DBM:
            raise ValueError(
                f"calibrated_power_1m must be in [{RSSI_MIN_DBM}, {RSSI_MAX_DBM}]: "
                f"{calibrated_power_1m}"
            )

        coordinate = KnownBeaconCoordinate(
            uuid=normalize_uuid(uuid),
            major=major,
            minor=minor,
            x=float(x),
            y=float(y),
            calibrated_power_1m=int(calibrated_power_1m),
            display_name=(name or "")[:MAX_NAME_LENGTH],
        )

        if coordinate.key in self._coordinates:
            logger.info(f"Updated beacon {coordinate.key} at {coordinate.position}")
        else:
            logger.info(f"Registered beacon {coordinate.key} at {coordinate.position}")
        self._coordinates[coordinate.key] = coordinate
        return coordinate

    def remove(self, uuid: str, major: int, minor: int) -> bool:
        """Remove a beacon; returns False if it was not registered."""
        removed = self._coordinates.pop(self._key(uuid, major, minor), None)
        if removed is not None:
            logger.info(f"Removed beacon {removed.key}")
        return removed is not None

    def get(self, uuid: str, major: int, minor: int) -> Optional[KnownBeaconCoordinate]:
        return self._coordinates.get(self._key(uuid, major, minor))

    def beacons_in_region(self, uuid: str) -> List[KnownBeaconCoordinate]:
        """All registered beacons of one proximity UUID."""
        region = normalize_uuid(uuid)
        return [c for c in self._coordinates.values() if c.uuid == region]

    def as_lookup(self) -> Dict[BeaconKey, KnownBeaconCoordinate]:
        """Copy of the (uuid, major, minor) -> coordinate mapping."""
        return dict(self._coordinates)

    @staticmethod
    def _key(uuid: str, major: int, minor: int) -> BeaconKey:
        return (normalize_uuid(uuid), major, minor)
