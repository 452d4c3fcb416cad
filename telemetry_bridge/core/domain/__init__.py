"""Domain layer - Modelos y errores."""

from .reading import Reading, UNKNOWN_TAG
from .errors import DecodeError, DecodeErrorKind, PreconditionError, SinkUnavailable

__all__ = [
    "Reading",
    "UNKNOWN_TAG",
    "DecodeError",
    "DecodeErrorKind",
    "PreconditionError",
    "SinkUnavailable",
]
