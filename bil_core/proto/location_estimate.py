"""
Location Estimate Output Schema.

Defines the output of the position solver: a 2-D location when the
Levenberg-Marquardt fit converged, or a NO_FIX carrying the failure kind.
"""

from dataclasses import dataclass
from typing import Optional
from enum import Enum, IntEnum


class FixType(IntEnum):
    """Type of position fix."""

    NO_FIX = 0          # No valid solution this cycle
    FIX_2D = 1          # 2D plane position (x, y)


class SolverFailure(Enum):
    """Why a solve produced no location."""

    # Input rejection
    INSUFFICIENT_POINTS = "insufficient_points"
    LENGTH_MISMATCH = "length_mismatch"
    DIMENSION_MISMATCH = "dimension_mismatch"
    INVALID_DISTANCE = "invalid_distance"

    # Numerical non-convergence
    MAX_EVALUATIONS = "max_evaluations"
    MAX_ITERATIONS = "max_iterations"
    COST_RELATIVE_TOLERANCE = "cost_relative_tolerance"
    PAR_RELATIVE_TOLERANCE = "par_relative_tolerance"
    ORTHO_TOLERANCE = "ortho_tolerance"
    QR_DECOMPOSITION = "qr_decomposition"

    @property
    def is_input_rejection(self) -> bool:
        """True for "not enough / malformed data", False for numerical failures."""
        return self in (
            SolverFailure.INSUFFICIENT_POINTS,
            SolverFailure.LENGTH_MISMATCH,
            SolverFailure.DIMENSION_MISMATCH,
            SolverFailure.INVALID_DISTANCE,
        )


@dataclass(frozen=True)
class Location2D:
    """Solved plane position (x, y) in meters."""

    x: float
    y: float

    def as_tuple(self):
        return (self.x, self.y)


@dataclass
class LocationEstimate:
    """
    Result of one solve.

    Attributes:
        t_solve: Cycle time the estimate belongs to
        fix_type: NO_FIX or FIX_2D
        location: Solved location (None for NO_FIX)
        num_beacons_used: Number of (position, distance) pairs fed to the solver
        failure: Failure kind for NO_FIX, None for a fix
        iterations: Outer LM iterations performed
        evaluations: Residual/Jacobian evaluations performed
        weighted_cost: sqrt(sum(w_i * r_i^2)) at the solution

    Notes:
        - A NO_FIX never carries a location, not even a previous one
    """

    t_solve: float
    fix_type: FixType
    location: Optional[Location2D]
    num_beacons_used: int
    failure: Optional[SolverFailure] = None
    iterations: int = 0
    evaluations: int = 0
    weighted_cost: Optional[float] = None

    def __post_init__(self):
        """Validate estimate consistency."""
        if self.num_beacons_used < 0:
            raise ValueError(f"Num beacons cannot be negative: {self.num_beacons_used}")

        if self.fix_type == FixType.NO_FIX and self.location is not None:
            raise ValueError("NO_FIX estimate cannot carry a location")

        if self.fix_type != FixType.NO_FIX and self.location is None:
            raise ValueError(f"{self.fix_type.name} estimate requires a location")

    @property
    def has_valid_fix(self) -> bool:
        """Check if this is a valid position fix (not NO_FIX)."""
        return self.fix_type != FixType.NO_FIX

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            't_solve': self.t_solve,
            'fix_type': self.fix_type.name,
            'location': self.location.as_tuple() if self.location else None,
            'num_beacons_used': self.num_beacons_used,
            'failure': self.failure.value if self.failure else None,
            'iterations': self.iterations,
            'evaluations': self.evaluations,
            'weighted_cost': self.weighted_cost,
        }


def create_no_fix(
    t_solve: float,
    failure: SolverFailure,
    num_beacons_used: int = 0,
    iterations: int = 0,
    evaluations: int = 0,
) -> LocationEstimate:
    """
    Create a NO_FIX location estimate.

    Args:
        t_solve: Cycle time
        failure: Reason no location is reported
        num_beacons_used: Number of beacons offered to the solver

    Returns:
        LocationEstimate with NO_FIX
    """
    return LocationEstimate(
        t_solve=t_solve,
        fix_type=FixType.NO_FIX,
        location=None,
        num_beacons_used=num_beacons_used,
        failure=failure,
        iterations=iterations,
        evaluations=evaluations,
    )
