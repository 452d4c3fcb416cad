"""Dispatch layer - Fan-out de lecturas a los sinks."""

from .dispatcher import SensorDataDispatcher

__all__ = ["SensorDataDispatcher"]
