"""
Beacon Locator Pipeline.

One call per ranging cycle:
1. Feed an active calibration session with the calibrated beacon's RSSI
2. Ingest observations into the tracker (EMA smoothing, staleness eviction)
3. Snapshot (position, distance) pairs of every tracked beacon
4. Solve the 2D position with Levenberg-Marquardt

Settings changes and calibration commands arrive as channel messages and are
applied between cycles, on the thread that owns the locator.
"""

import logging
from typing import Iterable, List, Mapping, Optional

from bil_core.config import LocatorSettings
from bil_core.domain.known_beacons import KnownBeaconRegistry
from bil_core.io.observation_channel import (
    CalibrationStart,
    CalibrationStop,
    ChannelMessage,
    ObservationChannel,
    ScanBatch,
    WindowSizeChanged,
)
from bil_core.metrics import MetricsCollector
from bil_core.proto.location_estimate import LocationEstimate
from bil_core.proto.observation import BeaconKey, KnownBeaconCoordinate, RawObservation
from .beacon_tracker import BeaconTracker
from .calibration import CalibrationSession
from .position_solver import PositionSolver, PositionSolverConfig

logger = logging.getLogger(__name__)


class BeaconLocator:
    """
    Tracker + solver + calibration behind a single-threaded facade.

    Usage:
        registry = KnownBeaconRegistry()
        registry.add_or_update(uuid, 1, 1, 0.0, 0.0, -59)
        ...
        locator = BeaconLocator(LocatorSettings(region_uuid=uuid), registry=registry)

        estimate = locator.process_cycle(observations, registry.as_lookup(), now)
        if estimate.has_valid_fix:
            print(f"Position: {estimate.location.as_tuple()}")
    """

    def __init__(
        self,
        settings: Optional[LocatorSettings] = None,
        solver_config: Optional[PositionSolverConfig] = None,
        registry: Optional[KnownBeaconRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize locator.

        Args:
            settings: Locator settings (uses defaults if None)
            solver_config: Solver configuration (uses defaults if None)
            registry: Known beacons used for channel ScanBatch messages
            metrics: Metrics collector shared by all components
        """
        self.settings = settings or LocatorSettings()
        self.metrics = metrics or MetricsCollector()
        self.registry = registry if registry is not None else KnownBeaconRegistry(
            area_size_m=self.settings.area_size_m
        )

        self.tracker = BeaconTracker(
            window_size=self.settings.window_size,
            region_uuid=self.settings.region_uuid,
            max_age_s=self.settings.max_age_s,
            metrics=self.metrics,
        )
        self.solver = PositionSolver(solver_config, metrics=self.metrics)

        self._calibration: Optional[CalibrationSession] = None
        self.calibration_result: Optional[int] = None
        self.last_estimate: Optional[LocationEstimate] = None

    @property
    def calibration_active(self) -> bool:
        return self._calibration is not None

    @property
    def calibration_session(self) -> Optional[CalibrationSession]:
        return self._calibration

    def process_cycle(
        self,
        observations: Iterable[RawObservation],
        known_coordinates: Mapping[BeaconKey, KnownBeaconCoordinate],
        now: float,
    ) -> LocationEstimate:
        """
        Run one ranging cycle.

        Args:
            observations: Raw observations of this cycle
            known_coordinates: Lookup by (uuid, major, minor)
            now: Cycle time (seconds)

        Returns:
            LocationEstimate for this cycle (NO_FIX with a failure kind if
            the position could not be solved)
        """
        observations = list(observations)
        self.metrics.increment('cycles')

        if self._calibration is not None:
            self._feed_calibration(observations)

        self.tracker.ingest(observations, known_coordinates, now)

        pairs = self.tracker.snapshot()
        points = [position for position, _ in pairs]
        distances = [distance for _, distance in pairs]

        estimate = self.solver.solve_estimate(points, distances, t_solve=now)
        self.last_estimate = estimate

        if estimate.has_valid_fix:
            logger.debug(
                f"t={now:.2f} fix ({estimate.location.x:.2f}, {estimate.location.y:.2f}) "
                f"from {estimate.num_beacons_used} beacons"
            )
        else:
            logger.debug(f"t={now:.2f} no fix: {estimate.failure.value}")

        return estimate

    def apply_settings(self, settings: LocatorSettings):
        """
        Switch to new settings between cycles.

        A window size change trims the tracked windows; a region change
        forgets every tracked beacon.
        """
        previous = self.settings
        self.settings = settings

        if settings.window_size != previous.window_size:
            self.tracker.update_window_size(settings.window_size)

        if settings.region_uuid != previous.region_uuid:
            self.tracker.region_uuid = settings.region_uuid
            self.tracker.clear()
            logger.info(f"Region changed to {settings.region_uuid}, tracker cleared")

        self.tracker.max_age_s = settings.max_age_s
        self.registry.area_size_m = settings.area_size_m

    def start_calibration(self, major: int, minor: int) -> CalibrationSession:
        """Begin averaging the RSSI of one beacon, replacing any running session."""
        self._calibration = CalibrationSession(
            major, minor, self.settings.calibration_sample_count, metrics=self.metrics
        )
        self.calibration_result = None
        logger.info(
            f"Calibrating beacon ({major}, {minor}) over "
            f"{self.settings.calibration_sample_count} samples"
        )
        return self._calibration

    def stop_calibration(self) -> Optional[int]:
        """
        Stop calibrating.

        Returns:
            Calibrated 1 m power of the last completed session, None if the
            running session was aborted before collecting enough samples
        """
        session = self._calibration
        self._calibration = None

        if session is not None:
            logger.info(
                f"Calibration of beacon {session.beacon_id} aborted at "
                f"{session.progress:.0%}"
            )
            return None

        return self.calibration_result

    def handle(self, message: ChannelMessage) -> Optional[LocationEstimate]:
        """
        Apply one channel message.

        Returns:
            LocationEstimate for ScanBatch messages, None otherwise
        """
        if isinstance(message, ScanBatch):
            return self.process_cycle(message.observations, self.registry.as_lookup(), message.now)

        if isinstance(message, WindowSizeChanged):
            try:
                settings = self.settings.with_updates(window_size=message.window_size)
            except ValueError as e:
                self.metrics.increment_drop('invalid_settings')
                logger.warning(f"Ignoring window size change: {e}")
                return None
            self.apply_settings(settings)
        elif isinstance(message, CalibrationStart):
            self.start_calibration(message.major, message.minor)
        elif isinstance(message, CalibrationStop):
            self.stop_calibration()
        else:
            raise TypeError(f"Unsupported channel message: {type(message).__name__}")

        return None

    def drain(self, channel: ObservationChannel) -> List[LocationEstimate]:
        """Handle every queued message; returns the estimates of the scan batches."""
        estimates = []
        for message in channel.drain():
            estimate = self.handle(message)
            if estimate is not None:
                estimates.append(estimate)
        return estimates

    def get_statistics(self) -> dict:
        """Get locator statistics."""
        return {
            'cycles': self.metrics.get_counter('cycles'),
            'tracked_beacons': len(self.tracker),
            'solve_attempts': self.metrics.get_counter('solve_attempts'),
            'solve_success': self.metrics.get_counter('solve_success'),
            'insufficient_beacons': self.metrics.get_drop_count('insufficient_beacons'),
            'solver_failed': self.metrics.get_drop_count('solver_failed'),
            'unknown_beacon': self.metrics.get_drop_count('unknown_beacon'),
            'beacons_evicted': self.metrics.get_counter('beacons_evicted'),
            'calibration_active': self.calibration_active,
            'window_size': self.tracker.window_size,
        }

    def _feed_calibration(self, observations: List[RawObservation]):
        """Offer the calibrated beacon's first reading of the cycle to the session."""
        session = self._calibration
        sample = next((o for o in observations if o.beacon_id == session.beacon_id), None)
        if sample is None:
            return

        if session.add_sample(sample):
            self.calibration_result = session.result()
            self._calibration = None
