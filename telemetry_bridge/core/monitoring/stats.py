"""Estadísticas de procesamiento."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class DispatchStats:
    """Estadísticas del dispatcher.

    Los contadores se actualizan desde el hilo de entrega de paho;
    increment() los protege por si el transporte entrega en paralelo.
    """

    received: int = 0
    dispatched: int = 0
    malformed: int = 0
    incomplete: int = 0
    kafka_failures: int = 0
    influx_failures: int = 0
    last_message_at: float = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} dispatched={self.dispatched} "
            f"malformed={self.malformed} incomplete={self.incomplete} "
            f"kafka_failures={self.kafka_failures} influx_failures={self.influx_failures}"
        )

    def to_dict(self) -> dict:
        """Convierte a diccionario."""
        with self._lock:
            return {
                "received": self.received,
                "dispatched": self.dispatched,
                "malformed": self.malformed,
                "incomplete": self.incomplete,
                "kafka_failures": self.kafka_failures,
                "influx_failures": self.influx_failures,
                "last_message_at": self.last_message_at,
                "started_at": self.started_at.isoformat(),
                "success_rate": self._success_rate(),
            }

    def _success_rate(self) -> float:
        """Calcula tasa de mensajes despachados sobre recibidos."""
        if self.received == 0:
            return 1.0
        return self.dispatched / self.received
