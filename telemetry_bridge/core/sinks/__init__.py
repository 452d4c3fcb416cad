"""Sinks layer - Kafka (log) e InfluxDB (series temporales)."""

from .kafka_sink import KafkaLogSink
from .influx_sink import InfluxTimeSeriesSink

__all__ = ["KafkaLogSink", "InfluxTimeSeriesSink"]
