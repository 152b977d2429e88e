"""Observability layer: aggregated service health. No FastAPI."""

from kindling.observability.health_monitor import HealthMonitor

__all__ = ["HealthMonitor"]
