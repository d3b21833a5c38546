"""
Unit tests for locator configuration.

Tests cover:
- LocatorSettings defaults and validation
- Copy-on-update and dict construction
- Solver configuration defaults
- Root demo configuration consistency
"""

import dataclasses

import pytest

import config
from bil_core.config import DEFAULT_REGION_UUID, LocatorSettings, WINDOW_SIZE_MAX, WINDOW_SIZE_MIN
from bil_core.localization import LevenbergMarquardtConfig, PositionSolverConfig
from bil_core.proto import RSSI_MAX_DBM, RSSI_MIN_DBM


class TestLocatorSettings:
    """Tests for LocatorSettings."""

    def test_defaults(self):
        """Test default settings."""
        settings = LocatorSettings()

        assert settings.region_uuid == DEFAULT_REGION_UUID
        assert settings.window_size == 10
        assert settings.calibration_sample_count == 30
        assert settings.area_size_m == 50
        assert settings.max_age_s == 12.0

    def test_uuid_canonicalized(self):
        """Test the region UUID is stored upper case."""
        settings = LocatorSettings(region_uuid=DEFAULT_REGION_UUID.lower())

        assert settings.region_uuid == DEFAULT_REGION_UUID

    def test_invalid_uuid(self):
        """Test a malformed UUID raises ValueError."""
        with pytest.raises(ValueError):
            LocatorSettings(region_uuid="beacon")

    @pytest.mark.parametrize("size", [WINDOW_SIZE_MIN, WINDOW_SIZE_MAX])
    def test_window_size_bounds_accepted(self, size):
        """Test window size bounds are inclusive."""
        assert LocatorSettings(window_size=size).window_size == size

    @pytest.mark.parametrize("size", [WINDOW_SIZE_MIN - 1, WINDOW_SIZE_MAX + 1])
    def test_window_size_out_of_range(self, size):
        """Test window sizes outside 5-100 raise ValueError."""
        with pytest.raises(ValueError):
            LocatorSettings(window_size=size)

    @pytest.mark.parametrize("field_name", ['calibration_sample_count', 'area_size_m', 'max_age_s'])
    def test_non_positive_rejected(self, field_name):
        """Test non-positive counts and sizes raise ValueError."""
        with pytest.raises(ValueError):
            LocatorSettings(**{field_name: 0})

    def test_frozen(self):
        """Test settings cannot be mutated in place."""
        settings = LocatorSettings()
        with pytest.raises(dataclasses.FrozenInstanceError):
            settings.window_size = 20

    def test_with_updates(self):
        """Test with_updates() returns a validated copy."""
        settings = LocatorSettings()
        updated = settings.with_updates(window_size=20)

        assert updated.window_size == 20
        assert settings.window_size == 10
        with pytest.raises(ValueError):
            settings.with_updates(window_size=1000)

    def test_from_dict_ignores_unknown_keys(self):
        """Test from_dict() picks known fields only."""
        settings = LocatorSettings.from_dict({'window_size': 15, 'colour': 'blue'})

        assert settings.window_size == 15


class TestSolverConfig:
    """Tests for solver configuration."""

    def test_optimizer_defaults(self):
        """Test Levenberg-Marquardt defaults."""
        optimizer = PositionSolverConfig().optimizer

        assert isinstance(optimizer, LevenbergMarquardtConfig)
        assert optimizer.max_evaluations == 1000
        assert optimizer.max_iterations == 1000
        assert optimizer.initial_step_bound_factor == 100.0
        assert optimizer.cost_relative_tolerance == 1e-10
        assert optimizer.par_relative_tolerance == 1e-10
        assert optimizer.ortho_tolerance == 1e-10
        assert optimizer.qr_ranking_threshold == 2.2250738585072014e-308

    def test_invalid_budget(self):
        """Test non-positive budgets are rejected."""
        with pytest.raises(AssertionError):
            LevenbergMarquardtConfig(max_iterations=0)


class TestDemoConfig:
    """Tests for the root demo configuration."""

    def test_locator_config_valid(self):
        """Test LOCATOR_CONFIG builds valid settings."""
        settings = LocatorSettings.from_dict(config.LOCATOR_CONFIG)

        assert settings.window_size == config.LOCATOR_CONFIG["window_size"]

    def test_simulated_beacons_valid(self):
        """Test simulated beacons fit the area and calibration range."""
        area = config.LOCATOR_CONFIG["area_size_m"]
        beacons = config.SIMULATION_CONFIG["beacons"]

        assert len(beacons) >= 3
        for beacon in beacons:
            assert abs(beacon["x"]) <= area and abs(beacon["y"]) <= area
            assert RSSI_MIN_DBM <= beacon["power_1m"] <= RSSI_MAX_DBM
