"""
Unit tests for the Known Beacon Registry.

Tests cover:
- Insert, update and removal
- UUID canonicalization
- Area and calibration range validation
- Display name handling
- Lookup mapping consumed by the tracker
"""

import pytest

from bil_core.domain import KnownBeaconRegistry, MAX_NAME_LENGTH


class TestAddOrUpdate:
    """Tests for add_or_update()."""

    def test_add_beacon(self, region_uuid):
        """Test registering a beacon."""
        registry = KnownBeaconRegistry()
        coordinate = registry.add_or_update(region_uuid, 1, 2, 3.5, -4.0, -59, name="Door")

        assert len(registry) == 1
        assert coordinate.position == (3.5, -4.0)
        assert coordinate.calibrated_power_1m == -59
        assert coordinate.display_name == "Door"
        assert (region_uuid, 1, 2) in registry

    def test_update_replaces(self, region_uuid):
        """Test the same (uuid, major, minor) updates in place."""
        registry = KnownBeaconRegistry()
        registry.add_or_update(region_uuid, 1, 2, 0.0, 0.0, -59)
        registry.add_or_update(region_uuid, 1, 2, 5.0, 5.0, -65)

        assert len(registry) == 1
        assert registry.get(region_uuid, 1, 2).position == (5.0, 5.0)
        assert registry.get(region_uuid, 1, 2).calibrated_power_1m == -65

    def test_uuid_case_insensitive(self, region_uuid):
        """Test UUIDs are stored in canonical upper case."""
        registry = KnownBeaconRegistry()
        registry.add_or_update(region_uuid.lower(), 1, 1, 0.0, 0.0, -59)

        assert registry.get(region_uuid, 1, 1) is not None
        assert registry.get(region_uuid, 1, 1).uuid == region_uuid.upper()

    def test_invalid_uuid(self):
        """Test malformed UUIDs raise ValueError."""
        registry = KnownBeaconRegistry()
        with pytest.raises(ValueError):
            registry.add_or_update("not-a-uuid", 1, 1, 0.0, 0.0, -59)


class TestValidation:
    """Tests for coordinate and calibration validation."""

    def test_position_outside_area(self, region_uuid):
        """Test |x| or |y| beyond the area raises ValueError."""
        registry = KnownBeaconRegistry(area_size_m=10)

        with pytest.raises(ValueError):
            registry.add_or_update(region_uuid, 1, 1, 11.0, 0.0, -59)
        with pytest.raises(ValueError):
            registry.add_or_update(region_uuid, 1, 1, 0.0, -11.0, -59)
        assert len(registry) == 0

    def test_area_check_truncates(self, region_uuid):
        """Test the area check compares the integer part of a coordinate."""
        registry = KnownBeaconRegistry(area_size_m=10)
        registry.add_or_update(region_uuid, 1, 1, 10.9, -10.9, -59)

        assert len(registry) == 1

    @pytest.mark.parametrize("power", [-111, -39, 0])
    def test_calibration_out_of_range(self, region_uuid, power):
        """Test 1 m power outside [-110, -40] raises ValueError."""
        registry = KnownBeaconRegistry()
        with pytest.raises(ValueError):
            registry.add_or_update(region_uuid, 1, 1, 0.0, 0.0, power)

    @pytest.mark.parametrize("power", [-110, -40])
    def test_calibration_bounds_inclusive(self, region_uuid, power):
        """Test the calibration range bounds are accepted."""
        registry = KnownBeaconRegistry()
        registry.add_or_update(region_uuid, 1, 1, 0.0, 0.0, power)

        assert registry.get(region_uuid, 1, 1).calibrated_power_1m == power

    def test_non_positive_area_rejected(self):
        """Test a non-positive area size raises ValueError."""
        with pytest.raises(ValueError):
            KnownBeaconRegistry(area_size_m=0)


class TestNames:
    """Tests for display names."""

    def test_long_name_truncated(self, region_uuid):
        """Test names are cut to 12 characters."""
        registry = KnownBeaconRegistry()
        coordinate = registry.add_or_update(region_uuid, 1, 1, 0.0, 0.0, -59, name="Conference Room B")

        assert MAX_NAME_LENGTH == 12
        assert coordinate.display_name == "Conference R"

    def test_missing_name_is_empty(self, region_uuid):
        """Test a missing name becomes the empty string."""
        registry = KnownBeaconRegistry()
        coordinate = registry.add_or_update(region_uuid, 1, 1, 0.0, 0.0, -59)

        assert coordinate.display_name == ""


class TestRemoveAndLookup:
    """Tests for removal and lookup."""

    def test_remove(self, registry, region_uuid):
        """Test removing a registered beacon."""
        assert registry.remove(region_uuid, 1, 1)
        assert registry.get(region_uuid, 1, 1) is None
        assert len(registry) == 2

    def test_remove_missing(self, registry, region_uuid):
        """Test removing an unknown beacon returns False."""
        assert not registry.remove(region_uuid, 9, 9)

    def test_as_lookup_keys(self, registry, region_uuid):
        """Test the lookup is keyed by (uuid, major, minor)."""
        lookup = registry.as_lookup()

        assert set(lookup) == {(region_uuid, 1, 1), (region_uuid, 1, 2), (region_uuid, 1, 3)}
        assert lookup[(region_uuid, 1, 2)].position == (10.0, 0.0)

    def test_as_lookup_is_copy(self, registry, region_uuid):
        """Test later registry changes do not leak into an earlier lookup."""
        lookup = registry.as_lookup()
        registry.remove(region_uuid, 1, 1)

        assert (region_uuid, 1, 1) in lookup

    def test_beacons_in_region(self, registry, region_uuid):
        """Test filtering by proximity UUID."""
        registry.add_or_update("11111111-2222-3333-4444-555555555555", 1, 1, 0.0, 0.0, -59)

        assert len(registry.beacons_in_region(region_uuid)) == 3
        assert len(list(registry)) == 4
