"""Métricas Prometheus del bridge."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

MESSAGES_DISPATCHED = Counter(
    'telemetry_bridge_messages_total',
    'Total MQTT messages handled by the dispatcher',
    ['status']  # dispatched, malformed, incomplete
)

SINK_CALL_FAILURES = Counter(
    'telemetry_bridge_sink_failures_total',
    'Sink calls that raised inside the dispatcher',
    ['sink']  # kafka, influx
)

KAFKA_DELIVERIES = Counter(
    'telemetry_bridge_kafka_deliveries_total',
    'Kafka delivery reports',
    ['status']  # success, failed, dropped
)

INFLUX_BATCHES = Counter(
    'telemetry_bridge_influx_batches_total',
    'InfluxDB batch write outcomes',
    ['status']  # success, failed, retry
)

INFLUX_REINITS = Counter(
    'telemetry_bridge_influx_reinit_total',
    'InfluxDB lazy reinitialization attempts',
    ['status']  # success, failed
)

MQTT_CONNECTED = Gauge(
    'telemetry_bridge_mqtt_connected',
    'MQTT subscriber connection status'
)

MQTT_RECONNECTS = Counter(
    'telemetry_bridge_mqtt_reconnects_total',
    'MQTT reconnections completed'
)
