"""
Unit tests for the RSSI calibration session.

Tests cover:
- Sample collection and completion
- Truncated mean result
- Mismatched beacons
"""

import pytest

from bil_core.localization import CalibrationSession
from bil_core.metrics import MetricsCollector

from conftest import make_observation


class TestCalibrationSession:
    """Tests for CalibrationSession."""

    def test_incomplete_has_no_result(self):
        """Test result() is None until enough samples are collected."""
        session = CalibrationSession(1, 1, sample_count=3)

        assert not session.add_sample(make_observation(1, 1, -60))
        assert not session.is_complete
        assert session.result() is None
        assert session.progress == pytest.approx(1 / 3)

    def test_complete_after_sample_count(self):
        """Test the session completes on the sample_count-th sample."""
        session = CalibrationSession(1, 1, sample_count=3)
        results = [session.add_sample(make_observation(1, 1, rssi)) for rssi in (-60, -62, -64)]

        assert results == [False, False, True]
        assert session.is_complete
        assert session.progress == 1.0
        assert session.result() == -62

    def test_mean_truncates_toward_zero(self):
        """Test a fractional mean is truncated, not floored."""
        session = CalibrationSession(1, 1, sample_count=2)
        session.add_sample(make_observation(1, 1, -60))
        session.add_sample(make_observation(1, 1, -61))

        # mean -60.5 -> -60
        assert session.result() == -60

    def test_extra_samples_ignored(self):
        """Test samples beyond sample_count do not change the result."""
        session = CalibrationSession(1, 1, sample_count=2)
        for rssi in (-60, -60, -90, -90):
            session.add_sample(make_observation(1, 1, rssi))

        assert session.samples == [-60, -60]
        assert session.result() == -60

    def test_other_beacon_counted_and_ignored(self):
        """Test observations of other beacons are counted as mismatches."""
        metrics = MetricsCollector()
        session = CalibrationSession(1, 1, sample_count=2, metrics=metrics)

        assert not session.add_sample(make_observation(1, 2, -60))
        assert session.samples == []
        assert metrics.get_drop_count('calibration_mismatch') == 1

    def test_invalid_sample_count(self):
        """Test sample_count must be positive."""
        with pytest.raises(ValueError):
            CalibrationSession(1, 1, sample_count=0)
