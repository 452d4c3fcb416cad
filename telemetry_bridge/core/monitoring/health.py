"""Health checks del bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..sinks.influx_sink import InfluxTimeSeriesSink
    from ..sinks.kafka_sink import KafkaLogSink
    from ..transport.mqtt_subscriber import MQTTSubscriber


@dataclass
class HealthStatus:
    """Estado de salud del sistema."""
    healthy: bool
    mqtt_subscribed: bool
    kafka_initialized: bool
    influx_initialized: bool
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "mqtt_subscribed": self.mqtt_subscribed,
            "kafka_initialized": self.kafka_initialized,
            "influx_initialized": self.influx_initialized,
            **self.details,
        }


class HealthChecker:
    """Verifica el estado de salud de suscriptor y sinks."""

    def __init__(
        self,
        subscriber: Optional[MQTTSubscriber] = None,
        log_sink: Optional[KafkaLogSink] = None,
        timeseries_sink: Optional[InfluxTimeSeriesSink] = None,
    ):
        self._subscriber = subscriber
        self._log_sink = log_sink
        self._timeseries_sink = timeseries_sink

    def check_mqtt(self) -> bool:
        return self._subscriber is not None and self._subscriber.is_subscribed

    def check_kafka(self) -> bool:
        return self._log_sink is not None and self._log_sink.is_initialized

    def check_influx(self) -> bool:
        return self._timeseries_sink is not None and self._timeseries_sink.is_initialized

    def check(self) -> HealthStatus:
        mqtt_ok = self.check_mqtt()
        kafka_ok = self.check_kafka()
        influx_ok = self.check_influx()
        return HealthStatus(
            healthy=mqtt_ok and kafka_ok and influx_ok,
            mqtt_subscribed=mqtt_ok,
            kafka_initialized=kafka_ok,
            influx_initialized=influx_ok,
            details={
                "mqtt": _component_health(self._subscriber),
                "kafka": _component_health(self._log_sink),
                "influx": _component_health(self._timeseries_sink),
            },
        )


def _component_health(component) -> Optional[dict]:
    if component is None:
        return None
    return component.health_check()
