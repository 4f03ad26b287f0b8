"""Reliability load drills, probes and SLO dashboards."""

__version__ = "0.1.0"
