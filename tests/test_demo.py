"""
Smoke tests for the simulation demo runner.
"""

import main


class TestBeaconSimulator:
    """Tests for synthetic observations."""

    def test_observations_in_rssi_range(self):
        """Test simulated readings are integer RSSI values of known beacons."""
        demo = main.LocatorDemo(cycles=1, seed=3)
        observations = demo.simulator.observe(0.0)
        minors = {b["minor"] for b in main.config.SIMULATION_CONFIG["beacons"]}

        for obs in observations:
            assert isinstance(obs.rssi, int)
            assert -110 <= obs.rssi <= -40
            assert obs.minor in minors


class TestLocatorDemo:
    """Tests for the end-to-end demo loop."""

    def test_run_produces_fixes(self, capsys):
        """Test a short run yields fixes and prints the summary."""
        demo = main.LocatorDemo(cycles=20, seed=1, window_size=8)
        demo.run()

        assert demo.fix_count > 0
        assert demo.locator.tracker.window_size == 8
        assert 'METRICS SUMMARY' in capsys.readouterr().out
