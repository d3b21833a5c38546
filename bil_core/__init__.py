"""
Beacon Indoor Locator (BIL) Core Package.

2D indoor positioning from iBeacon RSSI: EMA-smoothed signal strength,
log-distance path loss ranging and Levenberg-Marquardt multilateration.

Package structure:
- io: Bounded message channel into the locator
- proto: Observation and location estimate schemas
- localization: Beacon tracking, distance model, position solver, calibration
- domain: Known beacon registry
- metrics: Diagnostics, counters, histograms
"""

__version__ = "0.1.0"
