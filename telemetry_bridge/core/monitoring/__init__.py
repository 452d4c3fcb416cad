"""Monitoring layer - Métricas y observabilidad."""

from .stats import DispatchStats
from .health import HealthChecker, HealthStatus

__all__ = ["DispatchStats", "HealthChecker", "HealthStatus"]
