"""
Metrics Module: Diagnostics, counters, histograms.

- Counters: observations_in, beacons_evicted, solve_success, etc.
- Drop reasons: every rejected observation or failed solve has a code
- Histograms: solver iterations, weighted cost, tracked beacon count

Usage:
    from bil_core.metrics import MetricsCollector

    metrics = MetricsCollector()
    metrics.increment('observations_in')
    metrics.increment_drop('unknown_beacon')
    metrics.record_histogram('solver_iterations', 7)
"""

from .counters import CounterSnapshot, MetricsCollector

__all__ = ['CounterSnapshot', 'MetricsCollector']
