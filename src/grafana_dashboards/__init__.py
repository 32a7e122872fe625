"""Synchronize the Resource Consumption Analysis dashboards with a Grafana server."""

__version__ = "1.0.0"
