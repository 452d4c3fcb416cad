"""Codec layer - Decodificación y validación de payloads."""

from .reading_codec import DecodeResult, ReadingPayload, decode_reading

__all__ = ["DecodeResult", "ReadingPayload", "decode_reading"]
