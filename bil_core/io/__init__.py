"""
I/O Module: Bounded message channel into the locator.

- Bounded queue (no unbounded RAM growth)
- Backpressure by dropping and counting overflow
- Single consumer thread owns all tracker state
"""

from .observation_channel import (
    ObservationChannel,
    ChannelMessage,
    ScanBatch,
    WindowSizeChanged,
    CalibrationStart,
    CalibrationStop,
)

__all__ = [
    'ObservationChannel',
    'ChannelMessage',
    'ScanBatch',
    'WindowSizeChanged',
    'CalibrationStart',
    'CalibrationStop',
]
