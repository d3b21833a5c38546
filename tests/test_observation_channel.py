"""
Unit tests for the observation channel.

Tests cover:
- FIFO publish / drain
- Bounded capacity and overflow accounting
- Blocking get with timeout
- Concurrent producers
"""

import threading

import pytest

from bil_core.io import (
    CalibrationStart,
    CalibrationStop,
    ObservationChannel,
    ScanBatch,
    WindowSizeChanged,
)

from conftest import make_observation


class TestPublishDrain:
    """Tests for basic message flow."""

    def test_fifo_order(self):
        """Test messages are drained in publish order."""
        channel = ObservationChannel()
        messages = [
            ScanBatch([make_observation(1, 1, -60)], now=0.0),
            WindowSizeChanged(20),
            CalibrationStart(1, 1),
            CalibrationStop(),
        ]
        for message in messages:
            assert channel.publish(message)

        assert list(channel.drain()) == messages
        assert len(channel) == 0
        assert not channel.has_data()

    def test_drain_empty(self):
        """Test draining an empty channel yields nothing."""
        assert list(ObservationChannel().drain()) == []

    def test_get_timeout(self):
        """Test get() returns None on timeout."""
        assert ObservationChannel().get(timeout=0.01) is None

    def test_get_returns_message(self):
        """Test get() returns a published message."""
        channel = ObservationChannel()
        channel.publish(WindowSizeChanged(7))

        assert channel.get(timeout=0.1) == WindowSizeChanged(7)


class TestBackpressure:
    """Tests for the bounded queue."""

    def test_full_channel_drops(self, metrics):
        """Test publishing to a full channel fails and is counted."""
        channel = ObservationChannel(maxsize=2, metrics=metrics)

        assert channel.publish(CalibrationStop())
        assert channel.publish(CalibrationStop())
        assert not channel.publish(WindowSizeChanged(10))

        assert len(channel) == 2
        assert metrics.get_drop_count('queue_full') == 1

    def test_space_freed_after_drain(self):
        """Test the channel accepts messages again after draining."""
        channel = ObservationChannel(maxsize=1)
        channel.publish(CalibrationStop())
        list(channel.drain())

        assert channel.publish(CalibrationStop())

    def test_invalid_maxsize(self):
        """Test maxsize must be positive."""
        with pytest.raises(ValueError):
            ObservationChannel(maxsize=0)


class TestConcurrency:
    """Tests for multiple producer threads."""

    def test_concurrent_publish(self):
        """Test messages from several threads all arrive."""
        channel = ObservationChannel(maxsize=1000)

        def producer(offset):
            for i in range(100):
                channel.publish(WindowSizeChanged(offset + i))

        threads = [threading.Thread(target=producer, args=(k * 1000,)) for k in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        sizes = [message.window_size for message in channel.drain()]
        assert len(sizes) == 500
        assert len(set(sizes)) == 500
