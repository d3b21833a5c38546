"""
RSSI calibration session.

Collects raw RSSI samples of one beacon held at 1 m from the receiver; the
truncated mean of the samples becomes the beacon's calibrated 1 m power.
"""

import logging
from typing import List, Optional

from bil_core.metrics import MetricsCollector
from bil_core.proto.observation import RawObservation

logger = logging.getLogger(__name__)


class CalibrationSession:
    """
    Average the RSSI of a single beacon over a fixed number of samples.

    Usage:
        session = CalibrationSession(major=1, minor=7, sample_count=30)
        for obs in observations:
            if session.add_sample(obs):
                break
        power_1m = session.result()
    """

    def __init__(self, major: int, minor: int, sample_count: int,
                 metrics: Optional[MetricsCollector] = None):
        if sample_count < 1:
            raise ValueError(f"sample_count must be positive: {sample_count}")

        self.major = major
        self.minor = minor
        self.sample_count = sample_count
        self.metrics = metrics or MetricsCollector()
        self._samples: List[int] = []

    @property
    def beacon_id(self):
        return (self.major, self.minor)

    @property
    def is_complete(self) -> bool:
        return len(self._samples) >= self.sample_count

    @property
    def progress(self) -> float:
        """Fraction of the required samples collected (0.0 - 1.0)."""
        return min(len(self._samples) / self.sample_count, 1.0)

    @property
    def samples(self) -> List[int]:
        return list(self._samples)

    def add_sample(self, observation: RawObservation) -> bool:
        """
        Offer an observation to the session.

        Observations of other beacons are counted and ignored; samples beyond
        sample_count are ignored.

        Returns:
            True once the session holds sample_count samples
        """
        if observation.beacon_id != self.beacon_id:
            self.metrics.increment_drop('calibration_mismatch')
            return self.is_complete

        if not self.is_complete:
            self._samples.append(observation.rssi)
            if self.is_complete:
                logger.info(
                    f"Calibration of beacon {self.beacon_id} complete: {self.result()} dBm"
                )

        return self.is_complete

    def result(self) -> Optional[int]:
        """
        Calibrated 1 m power in dBm, truncated toward zero.

        Returns:
            int(mean(samples)), or None while the session is incomplete
        """
        if not self.is_complete:
            return None
        return int(sum(self._samples) / len(self._samples))
