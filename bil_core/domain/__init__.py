"""
Domain Module: Surveyed beacon layout.

Implements:
- Known beacon registry (position and 1 m calibration per beacon)
"""

from .known_beacons import (
    KnownBeaconRegistry,
    MAX_NAME_LENGTH,
)

__all__ = [
    'KnownBeaconRegistry',
    'MAX_NAME_LENGTH',
]
