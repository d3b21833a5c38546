"""
Position Solver (Weighted Least Squares Multilateration).

Finds the plane point p minimizing

    sum_i w_i * (d_i^2 - |p - p_i|^2)^2,    w_i = 1 / d_i^2

with Levenberg-Marquardt, starting from the centroid of the beacon
positions. Residuals are squared-distance differences; the weights put
more trust in nearby beacons.

Input that cannot be solved (fewer than 3 pairs, mismatched lengths,
non-2D points, non-positive or non-finite distances) is rejected before
the optimizer runs.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from bil_core.metrics import MetricsCollector
from bil_core.proto.location_estimate import (
    FixType,
    Location2D,
    LocationEstimate,
    SolverFailure,
    create_no_fix,
)
from .lm_optimizer import (
    LevenbergMarquardtConfig,
    LevenbergMarquardtOptimizer,
    OptimizationError,
)

logger = logging.getLogger(__name__)

MIN_POINTS = 3


@dataclass
class PositionSolverConfig:
    """
    Configuration for the position solver.

    Attributes:
        optimizer: Levenberg-Marquardt budgets and tolerances
    """

    optimizer: LevenbergMarquardtConfig = None

    def __post_init__(self):
        if self.optimizer is None:
            self.optimizer = LevenbergMarquardtConfig()


def trilateration_model(positions: np.ndarray, distances: np.ndarray):
    """
    Residual / Jacobian callback for the optimizer.

    Residual r_i(p) = d_i^2 - |p - p_i|^2, Jacobian row 2 (p - p_i).
    """
    squared_distances = distances * distances

    def model(point: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        diff = point - positions
        residuals = squared_distances - np.sum(diff * diff, axis=1)
        jacobian = 2.0 * diff
        return residuals, jacobian

    return model


def weighted_cost(point: Sequence[float], positions: Sequence[Sequence[float]],
                  distances: Sequence[float]) -> float:
    """sqrt(sum(w_i * r_i^2)) of a candidate point."""
    positions = np.asarray(positions, dtype=float)
    distances = np.asarray(distances, dtype=float)
    residuals, _ = trilateration_model(positions, distances)(np.asarray(point, dtype=float))
    return float(np.sqrt(np.sum(residuals * residuals / (distances * distances))))


class PositionSolver:
    """
    Solve a 2D position from (beacon position, distance) pairs.

    Usage:
        solver = PositionSolver()
        location = solver.solve([(0, 0), (10, 0), (5, 10)], [5.0, 7.0, 6.0])
        if location is not None:
            print(f"Position: ({location.x:.2f}, {location.y:.2f})")

        # Or with the failure kind attached
        estimate = solver.solve_estimate(points, distances, t_solve=now)
    """

    def __init__(
        self,
        config: Optional[PositionSolverConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize position solver.

        Args:
            config: Solver configuration (uses defaults if None)
            metrics: Metrics collector (a private one is created if None)
        """
        self.config = config or PositionSolverConfig()
        self.metrics = metrics or MetricsCollector()
        self.optimizer = LevenbergMarquardtOptimizer(self.config.optimizer)

    def solve(
        self,
        points: Sequence[Sequence[float]],
        distances: Sequence[float],
    ) -> Optional[Location2D]:
        """
        Solve for a location, discarding the failure reason.

        Returns:
            Location2D, or None when the input is rejected or LM fails
        """
        return self.solve_estimate(points, distances).location

    def solve_estimate(
        self,
        points: Sequence[Sequence[float]],
        distances: Sequence[float],
        t_solve: float = 0.0,
    ) -> LocationEstimate:
        """
        Solve for a location.

        Args:
            points: Beacon positions [(x, y), ...]
            distances: Estimated distance to each beacon (m), same order
            t_solve: Cycle time stamped on the estimate

        Returns:
            LocationEstimate: FIX_2D with the location, or NO_FIX with the
            SolverFailure that prevented it
        """
        self.metrics.increment('solve_attempts')
        num_points = min(len(points), len(distances))

        failure = self._validate(points, distances)
        if failure is not None:
            if failure == SolverFailure.INSUFFICIENT_POINTS:
                self.metrics.increment_drop('insufficient_beacons')
            else:
                self.metrics.increment_drop('invalid_input')
            logger.debug(f"Solver input rejected: {failure.value}")
            return create_no_fix(t_solve, failure, num_beacons_used=num_points)

        positions = np.array([[float(c) for c in p] for p in points], dtype=float)
        ranges = np.array([float(d) for d in distances], dtype=float)
        weights = 1.0 / (ranges * ranges)
        start = positions.mean(axis=0)

        try:
            # Degenerate steps surface as QR_DECOMPOSITION failures, not warnings
            with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
                optimum = self.optimizer.optimize(
                    trilateration_model(positions, ranges), weights, start
                )
        except OptimizationError as e:
            self.metrics.increment_drop('solver_failed')
            logger.debug(f"Solver failed: {e}")
            return create_no_fix(
                t_solve,
                e.failure,
                num_beacons_used=len(positions),
                iterations=e.iterations,
                evaluations=e.evaluations,
            )

        self.metrics.increment('solve_success')
        self.metrics.record_histogram('solver_iterations', optimum.iterations)
        self.metrics.record_histogram('solver_weighted_cost', optimum.cost)

        return LocationEstimate(
            t_solve=t_solve,
            fix_type=FixType.FIX_2D,
            location=Location2D(float(optimum.point[0]), float(optimum.point[1])),
            num_beacons_used=len(positions),
            iterations=optimum.iterations,
            evaluations=optimum.evaluations,
            weighted_cost=optimum.cost,
        )

    @staticmethod
    def _validate(
        points: Sequence[Sequence[float]],
        distances: Sequence[float],
    ) -> Optional[SolverFailure]:
        """Return the reason the input cannot be solved, None if it can."""
        if len(points) < MIN_POINTS or len(distances) < MIN_POINTS:
            return SolverFailure.INSUFFICIENT_POINTS

        if len(points) != len(distances):
            return SolverFailure.LENGTH_MISMATCH

        if any(len(p) != 2 for p in points):
            return SolverFailure.DIMENSION_MISMATCH

        for d in distances:
            if not np.isfinite(d) or d <= 0:
                return SolverFailure.INVALID_DISTANCE

        return None
