"""
Pytest configuration and shared fixtures for Beacon Indoor Locator tests.

This module provides reusable fixtures for beacon layouts, known coordinate
lookups, trackers, solvers and observation helpers.
"""

import sys
import math
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bil_core.config import DEFAULT_REGION_UUID, LocatorSettings
from bil_core.domain import KnownBeaconRegistry
from bil_core.localization import BeaconTracker, PositionSolver
from bil_core.metrics import MetricsCollector
from bil_core.proto import BeaconKey, KnownBeaconCoordinate, RawObservation


# =============================================================================
# Beacon Layout Fixtures
# =============================================================================


@pytest.fixture
def region_uuid() -> str:
    """Proximity UUID shared by every test beacon."""
    return DEFAULT_REGION_UUID


@pytest.fixture
def triangle_points() -> List[Tuple[float, float]]:
    """
    Beacon positions forming a non-degenerate triangle.

    Returns:
        [(0, 0), (10, 0), (5, 10)] in meters.
    """
    return [(0.0, 0.0), (10.0, 0.0), (5.0, 10.0)]


@pytest.fixture
def square_points() -> List[Tuple[float, float]]:
    """Four beacons on the corners of a 10 m x 8 m room."""
    return [(0.0, 0.0), (10.0, 0.0), (10.0, 8.0), (0.0, 8.0)]


@pytest.fixture
def registry(region_uuid, triangle_points) -> KnownBeaconRegistry:
    """
    Registry with three beacons (major 1, minors 1-3) on the triangle layout.

    All beacons are calibrated to -59 dBm at 1 m.
    """
    registry = KnownBeaconRegistry(area_size_m=50)
    for minor, (x, y) in enumerate(triangle_points, start=1):
        registry.add_or_update(region_uuid, 1, minor, x, y, -59, name=f"B{minor}")
    return registry


@pytest.fixture
def known(registry) -> Dict[BeaconKey, KnownBeaconCoordinate]:
    """(uuid, major, minor) -> coordinate lookup of the registry fixture."""
    return registry.as_lookup()


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def metrics() -> MetricsCollector:
    """Fresh metrics collector per test."""
    return MetricsCollector()


@pytest.fixture
def tracker(region_uuid, metrics) -> BeaconTracker:
    """Tracker with window size 10 sharing the metrics fixture."""
    return BeaconTracker(window_size=10, region_uuid=region_uuid, metrics=metrics)


@pytest.fixture
def solver(metrics) -> PositionSolver:
    """Solver with default configuration sharing the metrics fixture."""
    return PositionSolver(metrics=metrics)


@pytest.fixture
def settings(region_uuid) -> LocatorSettings:
    """Default locator settings for the test region."""
    return LocatorSettings(region_uuid=region_uuid)


# =============================================================================
# Helpers
# =============================================================================


def make_observation(major: int, minor: int, rssi: int, t: float = 0.0) -> RawObservation:
    """Shorthand for a RawObservation."""
    return RawObservation(major=major, minor=minor, rssi=rssi, t_observed=t)


def rssi_for_distance(distance_m: float, power_1m: int = -59) -> int:
    """Integer RSSI the log-distance model maps to roughly distance_m."""
    return int(round(power_1m - 20.0 * math.log10(distance_m)))


def cost_at(point, points, distances) -> float:
    """Weighted least squares cost sum(w_i * r_i^2) at a point."""
    total = 0.0
    for (px, py), d in zip(points, distances):
        residual = d * d - ((point[0] - px) ** 2 + (point[1] - py) ** 2)
        total += residual * residual / (d * d)
    return total
