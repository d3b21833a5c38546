"""
RSSI to distance conversion (log-distance path-loss model).

With the path-loss exponent fixed at 2:
    d = 10 ^ ((P_1m - RSSI) / 20)
"""

import numpy as np

PATH_LOSS_EXPONENT = 2.0


def estimate_distance(calibrated_power_1m: int, observed_rssi: int) -> float:
    """
    Estimate beacon distance from an RSSI sample.

    Args:
        calibrated_power_1m: Expected RSSI at 1 m (dBm)
        observed_rssi: Observed (smoothed) RSSI (dBm)

    Returns:
        Distance in meters. Total over integer inputs: extreme ratios
        saturate to inf / 0.0 instead of raising.
    """
    ratio_db = calibrated_power_1m - observed_rssi
    with np.errstate(over='ignore', under='ignore'):
        distance = np.power(10.0, ratio_db / (10.0 * PATH_LOSS_EXPONENT))
    return float(distance)
