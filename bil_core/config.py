"""
Locator settings.

Explicit configuration handed to the locator at construction time; changing
settings means building a new LocatorSettings and calling
BeaconLocator.apply_settings().
"""

from dataclasses import dataclass, replace

from bil_core.proto.observation import normalize_uuid

DEFAULT_REGION_UUID = "07070707-0405-0607-0809-0A0B0C0D0E00"

WINDOW_SIZE_MIN = 5
WINDOW_SIZE_MAX = 100


@dataclass(frozen=True)
class LocatorSettings:
    """
    Configuration for the beacon locator.

    Attributes:
        region_uuid: Proximity UUID of the scanned beacon region
        window_size: EMA smoothing window (samples); windows hold window_size + 1 values
        calibration_sample_count: RSSI samples averaged by a calibration session
        area_size_m: Half-width of the surveyed area; beacon coordinates must fit in it
        max_age_s: Staleness threshold after which a beacon is evicted
    """

    region_uuid: str = DEFAULT_REGION_UUID
    window_size: int = 10
    calibration_sample_count: int = 30
    area_size_m: int = 50
    max_age_s: float = 12.0

    def __post_init__(self):
        """Validate and canonicalize settings."""
        object.__setattr__(self, 'region_uuid', normalize_uuid(self.region_uuid))

        if not WINDOW_SIZE_MIN <= self.window_size <= WINDOW_SIZE_MAX:
            raise ValueError(
                f"window_size must be in [{WINDOW_SIZE_MIN}, {WINDOW_SIZE_MAX}]: {self.window_size}"
            )
        if self.calibration_sample_count < 1:
            raise ValueError(
                f"calibration_sample_count must be positive: {self.calibration_sample_count}"
            )
        if self.area_size_m <= 0:
            raise ValueError(f"area_size_m must be positive: {self.area_size_m}")
        if self.max_age_s <= 0:
            raise ValueError(f"max_age_s must be positive: {self.max_age_s}")

    def with_updates(self, **changes) -> "LocatorSettings":
        """Return a validated copy with the given fields replaced."""
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict) -> "LocatorSettings":
        """Build settings from a config dictionary, ignoring unknown keys."""
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        return cls(**known)
