"""Modelo de dominio para lecturas de sensores."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

UNKNOWN_TAG = "unknown"


@dataclass(frozen=True)
class Reading:
    """Lectura de sensor - modelo canónico de dominio.

    Se construye una por mensaje en el codec y viaja inmutable por el
    dispatch: MQTT → Codec → Kafka + InfluxDB. El pipeline no la retiene
    después de entregarla a los sinks.
    """
    sensor_type: str
    sensor_id: str
    value: float
    timestamp: int  # epoch en milisegundos
    location: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        """True si tiene los identificadores mínimos para enviarse a un sink."""
        return bool(self.sensor_id) and bool(self.sensor_type)

    @property
    def location_or_default(self) -> str:
        return self.location or UNKNOWN_TAG

    def to_log_dict(self) -> dict:
        """Convierte a diccionario para logs."""
        return {
            "sensor_id": self.sensor_id,
            "sensor_type": self.sensor_type,
            "location": self.location,
            "value": self.value,
            "timestamp": self.timestamp,
        }
