"""
Beacon locator demo configuration.
"""

# Locator configuration (see bil_core.config.LocatorSettings)
LOCATOR_CONFIG = {
    "region_uuid": "07070707-0405-0607-0809-0A0B0C0D0E00",
    "window_size": 10,                # EMA window (samples), 5-100
    "calibration_sample_count": 30,   # RSSI samples per calibration
    "area_size_m": 50,                # Beacons must lie within +/- this many meters
    "max_age_s": 12.0,                # Evict beacons unseen for longer than this
}

# Simulated room used by main.py
SIMULATION_CONFIG = {
    "cycle_period_s": 1.0,            # One ranging cycle per second
    "rssi_noise_std_db": 2.0,         # Gaussian RSSI noise
    "dropout_probability": 0.1,       # Chance a beacon is missing from a cycle
    "walk_center": (5.0, 4.0),        # Tag walks a circle around this point
    "walk_radius_m": 2.5,
    "walk_period_s": 60.0,
    "beacons": [
        {"major": 1, "minor": 1, "x": 0.0, "y": 0.0, "power_1m": -59, "name": "Entrance"},
        {"major": 1, "minor": 2, "x": 10.0, "y": 0.0, "power_1m": -61, "name": "Window"},
        {"major": 1, "minor": 3, "x": 10.0, "y": 8.0, "power_1m": -58, "name": "Kitchen"},
        {"major": 1, "minor": 4, "x": 0.0, "y": 8.0, "power_1m": -60, "name": "Hallway"},
    ],
}

# Output configuration
OUTPUT_CONFIG = {
    "print_interval": 5,              # Print every 5th estimate
}

# Logging configuration
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
