"""
Localization Module: RSSI smoothing, distance estimation, position solving.

Key classes:
- BeaconTracker: Per-beacon EMA RSSI smoothing with staleness eviction
- PositionSolver: Weighted least squares multilateration (Levenberg-Marquardt)
- CalibrationSession: 1 m RSSI calibration of a single beacon
- BeaconLocator: Per-cycle pipeline tying the above together
"""

from .distance_model import (
    estimate_distance,
    PATH_LOSS_EXPONENT,
)
from .beacon_state import BeaconTrackState
from .beacon_tracker import (
    BeaconTracker,
    round_half_away_from_zero,
)
from .lm_optimizer import (
    LevenbergMarquardtConfig,
    LevenbergMarquardtOptimizer,
    OptimizationError,
    OptimizationResult,
)
from .position_solver import (
    PositionSolver,
    PositionSolverConfig,
    trilateration_model,
    weighted_cost,
)
from .calibration import CalibrationSession
from .beacon_locator import BeaconLocator

__all__ = [
    # Distance model
    'estimate_distance',
    'PATH_LOSS_EXPONENT',
    # Tracking
    'BeaconTrackState',
    'BeaconTracker',
    'round_half_away_from_zero',
    # Solving
    'LevenbergMarquardtConfig',
    'LevenbergMarquardtOptimizer',
    'OptimizationError',
    'OptimizationResult',
    'PositionSolver',
    'PositionSolverConfig',
    'trilateration_model',
    'weighted_cost',
    # Pipeline
    'CalibrationSession',
    'BeaconLocator',
]
