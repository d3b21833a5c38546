"""
Beacon Observation Message Schemas.

Defines the records exchanged with the scanning and configuration
collaborators: raw RSSI observations and surveyed beacon coordinates.
"""

import uuid as uuid_lib
from dataclasses import dataclass
from typing import Optional, Tuple

# Plausible iBeacon RSSI range (dBm), also used for 1 m calibration values
RSSI_MIN_DBM = -110
RSSI_MAX_DBM = -40


BeaconKey = Tuple[str, int, int]  # (uuid, major, minor)


def normalize_uuid(value: str) -> str:
    """
    Canonical upper-case form of a proximity UUID.

    Raises:
        ValueError: If value is not a valid UUID string
    """
    return str(uuid_lib.UUID(str(value))).upper()


@dataclass(frozen=True)
class RawObservation:
    """
    Single RSSI reading of a beacon from one scan cycle.

    Attributes:
        major: iBeacon major identifier
        minor: iBeacon minor identifier
        rssi: Received signal strength (dBm, integer)
        t_observed: Scanner timestamp (seconds, monotonic or wall clock)

    Notes:
        - Ephemeral; the core never persists observations
        - The region UUID is implied by the scanner's ranging constraint
    """

    major: int
    minor: int
    rssi: int
    t_observed: float = 0.0

    @property
    def beacon_id(self) -> Tuple[int, int]:
        """(major, minor) identity within the scanned region."""
        return (self.major, self.minor)


@dataclass(frozen=True)
class KnownBeaconCoordinate:
    """
    Surveyed position and calibration of a beacon.

    Attributes:
        uuid: Proximity UUID (canonical upper-case string)
        major: iBeacon major identifier
        minor: iBeacon minor identifier
        x: Plane X coordinate (m)
        y: Plane Y coordinate (m)
        calibrated_power_1m: Expected RSSI at 1 m (dBm)
        display_name: Optional short label
    """

    uuid: str
    major: int
    minor: int
    x: float
    y: float
    calibrated_power_1m: int
    display_name: Optional[str] = None

    @property
    def key(self) -> BeaconKey:
        """Unique (uuid, major, minor) key."""
        return (self.uuid, self.major, self.minor)

    @property
    def position(self) -> Tuple[float, float]:
        """Plane position (x, y) in meters."""
        return (self.x, self.y)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'uuid': self.uuid,
            'major': self.major,
            'minor': self.minor,
            'x': self.x,
            'y': self.y,
            'calibrated_power_1m': self.calibrated_power_1m,
            'display_name': self.display_name,
        }
