"""Codec de lecturas: bytes del payload MQTT → Reading.

Función pura, sin I/O ni estado compartido; se puede llamar desde
varios hilos a la vez.

Formato esperado:
{
    "sensorType": "temperature",
    "location": "growlab",
    "sensorId": "sensor_1",
    "value": 24.5,
    "timestamp": 1700000000000
}
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..domain.errors import DecodeError, DecodeErrorKind
from ..domain.reading import Reading


class ReadingPayload(BaseModel):
    """Schema de validación del payload JSON.

    Acepta camelCase (formato de los dispositivos) y snake_case.
    Los identificadores se declaran opcionales para distinguir un
    payload incompleto de uno mal formado. value y timestamp ausentes
    (o null) valen 0, igual que los dispositivos legacy.
    """

    model_config = ConfigDict(populate_by_name=True)

    sensor_type: Optional[str] = Field(default=None, alias="sensorType")
    sensor_id: Optional[str] = Field(default=None, alias="sensorId")
    location: Optional[str] = None
    value: Optional[float] = None
    timestamp: Optional[int] = None

    @field_validator("sensor_id", mode="before")
    @classmethod
    def coerce_numeric_sensor_id(cls, v: Any) -> Any:
        # Algunos firmwares envían el id como número
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("sensor_type", "sensor_id", "location")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        # Solo detecta valores en blanco; el valor original se conserva
        if v is None or not v.strip():
            return None
        return v

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return v
        if math.isnan(v):
            raise ValueError("Value is NaN")
        if math.isinf(v):
            raise ValueError("Value is infinite")
        return v

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.sensor_id:
            missing.append("sensorId")
        if not self.sensor_type:
            missing.append("sensorType")
        return missing

    def to_reading(self) -> Reading:
        return Reading(
            sensor_type=self.sensor_type,
            sensor_id=self.sensor_id,
            value=float(self.value) if self.value is not None else 0.0,
            timestamp=int(self.timestamp) if self.timestamp is not None else 0,
            location=self.location,
        )


@dataclass(frozen=True)
class DecodeResult:
    """Resultado de decodificación."""

    reading: Optional[Reading] = None
    error: Optional[DecodeError] = None

    @property
    def valid(self) -> bool:
        return self.reading is not None and self.error is None


def _malformed(message: str) -> DecodeResult:
    return DecodeResult(error=DecodeError(DecodeErrorKind.MALFORMED, message))


def _incomplete(message: str) -> DecodeResult:
    return DecodeResult(error=DecodeError(DecodeErrorKind.INCOMPLETE, message))


def decode_reading(payload: Union[bytes, bytearray, str]) -> DecodeResult:
    """Decodifica y valida un payload de lectura.

    Args:
        payload: Bytes crudos del mensaje MQTT

    Returns:
        DecodeResult con la lectura, o con un DecodeError MALFORMED
        (JSON inválido o tipos incorrectos) o INCOMPLETE (falta sensorId
        o sensorType)
    """
    try:
        data = orjson.loads(payload)
    except (orjson.JSONDecodeError, TypeError) as e:
        return _malformed(f"Invalid JSON: {e}")

    if not isinstance(data, dict):
        return _malformed(f"Expected JSON object, got {type(data).__name__}")

    try:
        parsed = ReadingPayload.model_validate(data)
    except ValidationError as e:
        return _malformed(f"Invalid field types: {e.error_count()} error(s): {_summarize(e)}")

    missing = parsed.missing_fields()
    if missing:
        return _incomplete(f"Missing required fields: {', '.join(missing)}")

    return DecodeResult(reading=parsed.to_reading())


def _summarize(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{loc}: {item.get('msg')}")
    return "; ".join(parts)
