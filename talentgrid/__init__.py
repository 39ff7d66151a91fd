"""Performance rating and calibration engine."""
