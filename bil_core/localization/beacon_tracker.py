"""
Beacon State Tracker with EMA RSSI smoothing.

Maintains one BeaconTrackState per visible beacon, smooths its RSSI with a
fixed-window exponential moving average and evicts beacons that have not been
observed for longer than the staleness threshold.

Smoothing recurrence (window full, i.e. len == window_size + 1):
    anchor = window[window_size]
    weight = 2 / (window_size + 1)
    ema    = round_half_away_from_zero((rssi - anchor) * weight + anchor)
    window = window[1:] + [ema]

The tracker is the sole writer of its states; callers serialize ingest(),
update_window_size() and snapshot() on one thread.
"""

import logging
from copy import deepcopy
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from bil_core.config import DEFAULT_REGION_UUID
from bil_core.metrics import MetricsCollector
from bil_core.proto.observation import (
    BeaconKey,
    KnownBeaconCoordinate,
    RawObservation,
    normalize_uuid,
)
from .beacon_state import BeaconTrackState
from .distance_model import estimate_distance

logger = logging.getLogger(__name__)

Point2D = Tuple[float, float]


def round_half_away_from_zero(value: float) -> int:
    """Round to the nearest integer, ties away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(Decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class BeaconTracker:
    """
    Per-beacon RSSI smoothing and staleness tracking.

    Usage:
        tracker = BeaconTracker(window_size=10)
        tracker.ingest(observations, registry.as_lookup(), now)
        pairs = tracker.snapshot()   # [((x, y), distance_m), ...]
    """

    MAX_AGE_S = 12.0  # Evict beacons unseen for longer than this

    def __init__(
        self,
        window_size: int = 10,
        region_uuid: str = DEFAULT_REGION_UUID,
        max_age_s: float = MAX_AGE_S,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize beacon tracker.

        Args:
            window_size: EMA window size (windows hold window_size + 1 values)
            region_uuid: Proximity UUID the scanner ranges; used to match
                (major, minor) observations against known coordinates
            max_age_s: Staleness threshold in seconds
            metrics: Metrics collector (a private one is created if None)
        """
        if window_size < 1:
            raise ValueError(f"window_size must be positive: {window_size}")

        self.window_size = window_size
        self.region_uuid = normalize_uuid(region_uuid)
        self.max_age_s = max_age_s
        self.metrics = metrics or MetricsCollector()

        # Insertion-ordered: (major, minor) -> state
        self._states: Dict[Tuple[int, int], BeaconTrackState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, beacon_id: Tuple[int, int]) -> bool:
        return beacon_id in self._states

    @property
    def ema_weight(self) -> float:
        """Smoothing weight applied to the newest sample."""
        return 2.0 / (self.window_size + 1)

    def update_window_size(self, new_size: int):
        """
        Change the smoothing window size.

        Windows longer than new_size + 1 are cut down to their newest
        new_size samples; shorter windows are left untouched.

        Args:
            new_size: New window size
        """
        if new_size < 1:
            raise ValueError(f"window_size must be positive: {new_size}")

        self.window_size = new_size
        for state in self._states.values():
            if len(state.rssi_window) > new_size + 1:
                state.rssi_window = state.rssi_window[-new_size:]

        logger.info(f"Window size set to {new_size}")

    def ingest(
        self,
        observations: Iterable[RawObservation],
        known_coordinates: Mapping[BeaconKey, KnownBeaconCoordinate],
        now: float,
    ):
        """
        Fold one scan cycle of observations into the tracked states.

        Args:
            observations: Raw observations of this cycle
            known_coordinates: Lookup by (uuid, major, minor)
            now: Cycle time (seconds, same clock as previous cycles)

        Side Effects:
            - Creates / updates BeaconTrackState entries
            - Evicts stale entries after all observations are processed
            - Updates metrics counters
        """
        for observation in observations:
            self.metrics.increment('observations_in')

            coordinate = known_coordinates.get(
                (self.region_uuid, observation.major, observation.minor)
            )
            if coordinate is None:
                self.metrics.increment_drop('unknown_beacon')
                logger.debug(f"Ignoring unknown beacon {observation.beacon_id}")
                continue

            self._apply_observation(observation, coordinate, now)
            self.metrics.increment('observations_ingested')

        self._evict_stale(now)
        self.metrics.record_histogram('tracked_beacons', len(self._states))

    def snapshot(self) -> List[Tuple[Point2D, float]]:
        """
        Current (position, distance) pair for every tracked beacon.

        Returns:
            List of ((x, y), distance_m) in insertion order
        """
        return [
            (state.position, estimate_distance(state.calibrated_power_1m, state.rssi_window[-1]))
            for state in self._states.values()
        ]

    def get_state(self, major: int, minor: int) -> Optional[BeaconTrackState]:
        """Copy of the tracked state for a beacon, None if not tracked."""
        state = self._states.get((major, minor))
        return deepcopy(state) if state is not None else None

    def get_states(self) -> List[BeaconTrackState]:
        """Copies of all tracked states in insertion order."""
        return [deepcopy(state) for state in self._states.values()]

    def clear(self):
        """Forget all tracked beacons."""
        self._states.clear()

    def _apply_observation(
        self,
        observation: RawObservation,
        coordinate: KnownBeaconCoordinate,
        now: float,
    ):
        """Create or update the state of one matched beacon."""
        state = self._states.get(observation.beacon_id)

        if state is None:
            self._states[observation.beacon_id] = BeaconTrackState(
                major=observation.major,
                minor=observation.minor,
                position=coordinate.position,
                calibrated_power_1m=coordinate.calibrated_power_1m,
                last_seen_at=now,
                rssi_window=[observation.rssi],
            )
            self.metrics.increment('beacons_created')
            logger.debug(f"Tracking beacon {observation.beacon_id} at {coordinate.position}")
            return

        # Metadata always follows the latest observation
        state.position = coordinate.position
        state.calibrated_power_1m = coordinate.calibrated_power_1m
        state.last_seen_at = now

        # Unchanged readings do not feed the filter
        if observation.rssi == state.rssi_window[-1]:
            return

        window = state.rssi_window
        if len(window) < self.window_size + 1:
            window.append(observation.rssi)
        else:
            anchor = window[self.window_size]
            ema_value = round_half_away_from_zero(
                (observation.rssi - anchor) * self.ema_weight + anchor
            )
            del window[0]
            window.append(ema_value)

        self.metrics.increment('smoothing_updates')

    def _evict_stale(self, now: float):
        """Drop beacons unseen for longer than max_age_s."""
        stale = [
            beacon_id for beacon_id, state in self._states.items()
            if state.age(now) > self.max_age_s
        ]
        for beacon_id in stale:
            del self._states[beacon_id]
            self.metrics.increment('beacons_evicted')
            logger.debug(f"Evicted stale beacon {beacon_id}")
