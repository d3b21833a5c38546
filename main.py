"""
Beacon locator demo runner.

Simulates a tag walking through a room of iBeacons, synthesizes noisy RSSI
readings with the log-distance model, publishes them into an observation
channel and runs the locator once per cycle.
"""

import math
import signal
import logging
import argparse
from typing import List, Optional, Tuple

import numpy as np

import config
from bil_core.config import LocatorSettings
from bil_core.domain import KnownBeaconRegistry
from bil_core.io import ObservationChannel, ScanBatch, WindowSizeChanged
from bil_core.localization import BeaconLocator
from bil_core.metrics import MetricsCollector
from bil_core.proto import LocationEstimate, RawObservation, RSSI_MAX_DBM, RSSI_MIN_DBM

logging.basicConfig(
    level=getattr(logging, config.LOGGING_CONFIG["level"]),
    format=config.LOGGING_CONFIG["format"]
)
logger = logging.getLogger(__name__)


class BeaconSimulator:
    """Synthesizes per-cycle RSSI observations for a walking tag."""

    def __init__(self, sim_config: dict, rng: np.random.Generator):
        self.config = sim_config
        self.rng = rng
        self.beacons = sim_config["beacons"]

    def tag_position(self, t: float) -> Tuple[float, float]:
        """Ground truth position on the walk circle at time t."""
        cx, cy = self.config["walk_center"]
        radius = self.config["walk_radius_m"]
        phase = 2.0 * math.pi * t / self.config["walk_period_s"]
        return (cx + radius * math.cos(phase), cy + radius * math.sin(phase))

    def observe(self, t: float) -> List[RawObservation]:
        """One ranging cycle worth of observations."""
        x, y = self.tag_position(t)
        observations = []

        for beacon in self.beacons:
            if self.rng.random() < self.config["dropout_probability"]:
                continue

            distance = max(math.hypot(x - beacon["x"], y - beacon["y"]), 0.1)
            rssi = beacon["power_1m"] - 20.0 * math.log10(distance)
            rssi += self.rng.normal(0.0, self.config["rssi_noise_std_db"])
            rssi = int(np.clip(round(rssi), RSSI_MIN_DBM, RSSI_MAX_DBM))

            observations.append(RawObservation(
                major=beacon["major"],
                minor=beacon["minor"],
                rssi=rssi,
                t_observed=t,
            ))

        return observations


class LocatorDemo:
    """Drives the simulator and the locator over a fixed number of cycles."""

    def __init__(self, cycles: int, seed: int, window_size: Optional[int] = None):
        self.cycles = cycles
        self.running = False

        settings = LocatorSettings.from_dict(config.LOCATOR_CONFIG)

        self.metrics = MetricsCollector()
        self.registry = KnownBeaconRegistry(area_size_m=settings.area_size_m)
        for beacon in config.SIMULATION_CONFIG["beacons"]:
            self.registry.add_or_update(
                settings.region_uuid,
                beacon["major"],
                beacon["minor"],
                beacon["x"],
                beacon["y"],
                beacon["power_1m"],
                name=beacon.get("name"),
            )

        self.channel = ObservationChannel(metrics=self.metrics)
        self.locator = BeaconLocator(settings, registry=self.registry, metrics=self.metrics)
        self.simulator = BeaconSimulator(config.SIMULATION_CONFIG, np.random.default_rng(seed))

        if window_size is not None:
            self.channel.publish(WindowSizeChanged(window_size))

        self.fix_count = 0
        self.errors_m: List[float] = []

        signal.signal(signal.SIGINT, self._signal_handler)

        logger.info(f"Demo initialized with {len(self.registry)} beacons")

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        self.running = False

    def run(self):
        """Run all cycles, then print a summary."""
        period = config.SIMULATION_CONFIG["cycle_period_s"]
        print_interval = config.OUTPUT_CONFIG["print_interval"]
        self.running = True

        for cycle in range(self.cycles):
            if not self.running:
                break

            now = cycle * period
            self.channel.publish(ScanBatch(self.simulator.observe(now), now=now))

            for estimate in self.locator.drain(self.channel):
                self._record(estimate)
                if (cycle + 1) % print_interval == 0:
                    self._print_estimate(estimate)

        self._print_statistics()

    def _record(self, estimate: LocationEstimate):
        if not estimate.has_valid_fix:
            return
        self.fix_count += 1
        truth = self.simulator.tag_position(estimate.t_solve)
        self.errors_m.append(math.hypot(estimate.location.x - truth[0], estimate.location.y - truth[1]))

    def _print_estimate(self, estimate: LocationEstimate):
        truth = self.simulator.tag_position(estimate.t_solve)
        if estimate.has_valid_fix:
            print(f"[t={estimate.t_solve:6.1f}s] fix=({estimate.location.x:6.2f}, {estimate.location.y:6.2f}) "
                  f"truth=({truth[0]:6.2f}, {truth[1]:6.2f}) beacons={estimate.num_beacons_used} "
                  f"iterations={estimate.iterations}")
        else:
            print(f"[t={estimate.t_solve:6.1f}s] no fix ({estimate.failure.value})")

    def _print_statistics(self):
        stats = self.locator.get_statistics()
        print("\n" + "=" * 70)
        print(f"  Cycles: {stats['cycles']}  Fixes: {self.fix_count}  "
              f"Window size: {stats['window_size']}")
        if self.errors_m:
            errors = np.array(self.errors_m)
            print(f"  Error: mean={errors.mean():.2f} m, p95={np.percentile(errors, 95):.2f} m, "
                  f"max={errors.max():.2f} m")
        print(self.metrics.format_summary())


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Beacon indoor locator demo')
    parser.add_argument('--cycles', '-n', type=int, default=120,
                        help='Number of simulated ranging cycles')
    parser.add_argument('--seed', '-s', type=int, default=0,
                        help='Random seed for the RSSI simulation')
    parser.add_argument('--window-size', '-w', type=int, default=None,
                        help='EMA window size (5-100)')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    demo = LocatorDemo(cycles=args.cycles, seed=args.seed, window_size=args.window_size)
    demo.run()


if __name__ == "__main__":
    main()
