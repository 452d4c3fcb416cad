"""Taxonomía de errores del pipeline de ingesta."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DecodeErrorKind(str, Enum):
    """Motivo por el que un payload no produjo una lectura."""
    MALFORMED = "malformed"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class DecodeError:
    """Error de decodificación devuelto por el codec (no se lanza)."""
    kind: DecodeErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class PreconditionError(ValueError):
    """Argumento requerido ausente en la llamada a un componente."""


class SinkUnavailable(RuntimeError):
    """El cliente del sink no pudo inicializarse ni reinicializarse."""

    def __init__(self, sink: str, reason: str):
        self.sink = sink
        self.reason = reason
        super().__init__(f"Sink '{sink}' unavailable: {reason}")
