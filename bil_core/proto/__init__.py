"""
Protocol Module: Message schemas exchanged with the core.

- Observations and surveyed beacon coordinates (scanner/configuration input)
- Location estimates (solver output for the visualization layer)
"""

from .observation import (
    RawObservation,
    KnownBeaconCoordinate,
    BeaconKey,
    normalize_uuid,
    RSSI_MIN_DBM,
    RSSI_MAX_DBM,
)
from .location_estimate import (
    Location2D,
    LocationEstimate,
    FixType,
    SolverFailure,
    create_no_fix,
)

__all__ = [
    'RawObservation',
    'KnownBeaconCoordinate',
    'BeaconKey',
    'normalize_uuid',
    'RSSI_MIN_DBM',
    'RSSI_MAX_DBM',
    'Location2D',
    'LocationEstimate',
    'FixType',
    'SolverFailure',
    'create_no_fix',
]
