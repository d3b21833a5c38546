"""
Beacon track state representation.

One entry per tracked beacon inside BeaconTracker: the smoothed RSSI window
plus the metadata copied from the beacon's surveyed coordinate.
"""

from dataclasses import dataclass, field
from typing import List, Tuple

from .distance_model import estimate_distance


@dataclass
class BeaconTrackState:
    """
    Tracked beacon at the time of its last observation.

    Attributes:
        major: iBeacon major identifier
        minor: iBeacon minor identifier
        position: Plane position (x, y) copied from the known coordinate
        calibrated_power_1m: Expected RSSI at 1 m (dBm)
        last_seen_at: Cycle time of the last matching observation (s)
        rssi_window: Smoothed RSSI values, oldest first (at most window_size + 1)
    """

    major: int
    minor: int
    position: Tuple[float, float]
    calibrated_power_1m: int
    last_seen_at: float
    rssi_window: List[int] = field(default_factory=list)

    @property
    def beacon_id(self) -> Tuple[int, int]:
        return (self.major, self.minor)

    @property
    def current_rssi(self) -> int:
        """Most recent smoothed (or warm-up raw) RSSI."""
        return self.rssi_window[-1]

    @property
    def distance_m(self) -> float:
        """Distance implied by the current smoothed RSSI."""
        return estimate_distance(self.calibrated_power_1m, self.current_rssi)

    def age(self, now: float) -> float:
        """Seconds since this beacon was last observed."""
        return now - self.last_seen_at

    def to_dict(self) -> dict:
        """
        Serialize to dictionary.

        Returns:
            Dict representation suitable for JSON/logging
        """
        return {
            'major': self.major,
            'minor': self.minor,
            'position': {'x': self.position[0], 'y': self.position[1]},
            'calibrated_power_1m': self.calibrated_power_1m,
            'last_seen_at': self.last_seen_at,
            'rssi_window': list(self.rssi_window),
            'distance_m': self.distance_m,
        }
