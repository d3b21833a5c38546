"""
Observation Channel: bounded message queue into the locator.

Scanner batches, settings changes and calibration commands arrive from other
threads; they are published here and drained by the single thread that owns
the BeaconLocator, so tracker state never has more than one writer.
"""

import logging
from dataclasses import dataclass, field
from queue import Empty, Full, Queue
from typing import Iterator, List, Optional, Union

from bil_core.metrics import MetricsCollector
from bil_core.proto.observation import RawObservation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanBatch:
    """Observations of one ranging cycle."""

    observations: List[RawObservation] = field(default_factory=list)
    now: float = 0.0


@dataclass(frozen=True)
class WindowSizeChanged:
    """New EMA window size from the settings screen."""

    window_size: int


@dataclass(frozen=True)
class CalibrationStart:
    """Start averaging the RSSI of one beacon."""

    major: int
    minor: int


@dataclass(frozen=True)
class CalibrationStop:
    """Abort or finish the running calibration."""


ChannelMessage = Union[ScanBatch, WindowSizeChanged, CalibrationStart, CalibrationStop]


class ObservationChannel:
    """
    Bounded multi-producer, single-consumer message queue.

    Usage:
        channel = ObservationChannel(maxsize=64)

        # Producer threads
        channel.publish(ScanBatch(observations, now=time.monotonic()))
        channel.publish(WindowSizeChanged(20))

        # Locator thread
        for message in channel.drain():
            locator.handle(message)
    """

    def __init__(self, maxsize: int = 64, metrics: Optional[MetricsCollector] = None):
        """
        Initialize channel.

        Args:
            maxsize: Maximum queued messages (publish fails beyond this)
            metrics: Metrics collector (a private one is created if None)
        """
        if maxsize < 1:
            raise ValueError(f"maxsize must be positive: {maxsize}")

        self.maxsize = maxsize
        self.metrics = metrics or MetricsCollector()
        self._queue: "Queue[ChannelMessage]" = Queue(maxsize=maxsize)

    def __len__(self) -> int:
        return self._queue.qsize()

    def publish(self, message: ChannelMessage) -> bool:
        """
        Enqueue a message without blocking.

        Returns:
            False if the queue is full and the message was dropped
        """
        try:
            self._queue.put_nowait(message)
        except Full:
            self.metrics.increment_drop('queue_full')
            logger.warning(f"Channel full ({self.maxsize}), dropped {type(message).__name__}")
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[ChannelMessage]:
        """
        Wait for the next message.

        Returns:
            Message, or None on timeout
        """
        try:
            return self._queue.get(timeout=timeout)
        except Empty:
            return None

    def drain(self) -> Iterator[ChannelMessage]:
        """Yield queued messages in FIFO order until the queue is empty."""
        while True:
            try:
                yield self._queue.get_nowait()
            except Empty:
                return

    def has_data(self) -> bool:
        """Check if messages are waiting."""
        return not self._queue.empty()
