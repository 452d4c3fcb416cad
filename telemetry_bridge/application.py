"""Wiring y ciclo de vida del bridge MQTT → Kafka + InfluxDB."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from common.config import Settings, get_settings, log_settings

from .core.dispatch.dispatcher import SensorDataDispatcher
from .core.monitoring.health import HealthChecker
from .core.sinks.influx_sink import InfluxTimeSeriesSink
from .core.sinks.kafka_sink import KafkaLogSink
from .core.transport.mqtt_subscriber import MQTTSubscriber

logger = logging.getLogger(__name__)


class BridgeApplication:
    """Crea los servicios, los conecta y gestiona su cierre.

    Los componentes se pueden inyectar (tests); los que falten se
    construyen desde los settings en start().
    """

    def __init__(
        self,
        settings: Settings,
        log_sink: Optional[KafkaLogSink] = None,
        timeseries_sink: Optional[InfluxTimeSeriesSink] = None,
        subscriber: Optional[MQTTSubscriber] = None,
    ):
        self._settings = settings
        self._log_sink = log_sink
        self._timeseries_sink = timeseries_sink
        self._subscriber = subscriber
        self._dispatcher: Optional[SensorDataDispatcher] = None
        self._running = False
        self._shutdown_done = False
        self._lock = threading.Lock()

    def start(self) -> bool:
        """Inicia el bridge.

        Returns:
            True si el suscriptor quedó conectado
        """
        logger.info("[APP] Starting telemetry bridge...")
        try:
            if self._log_sink is None:
                self._log_sink = KafkaLogSink(self._settings.kafka)
            if self._timeseries_sink is None:
                self._timeseries_sink = InfluxTimeSeriesSink(self._settings.influx)
            if self._subscriber is None:
                self._subscriber = MQTTSubscriber(self._settings.mqtt)

            self._dispatcher = SensorDataDispatcher(self._log_sink, self._timeseries_sink)
            self._subscriber.set_message_handler(self._dispatcher.on_message)

            # La suscripción se dispara desde el callback de conexión
            if not self._subscriber.connect():
                logger.error("[APP] MQTT connection failed, shutting down")
                self.shutdown()
                return False

            self._running = True
            logger.info("[APP] Telemetry bridge started successfully")
            return True

        except Exception as e:
            logger.exception("[APP] FATAL: application failed to start: %s", e)
            self.shutdown()
            return False

    def shutdown(self) -> None:
        """Cierra suscriptor y sinks. Idempotente; cada cierre es independiente."""
        with self._lock:
            if self._shutdown_done:
                return
            self._shutdown_done = True
            self._running = False

        logger.info("[APP] Shutting down telemetry bridge...")
        # Primero dejar de recibir, luego vaciar los sinks
        for name, component in (
            ("MQTT subscriber", self._subscriber),
            ("Kafka sink", self._log_sink),
            ("InfluxDB sink", self._timeseries_sink),
        ):
            if component is None:
                continue
            try:
                component.close()
            except Exception as e:
                logger.error("[APP] Error closing %s: %s", name, e)
        logger.info("[APP] Telemetry bridge shut down complete")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def dispatcher(self) -> Optional[SensorDataDispatcher]:
        return self._dispatcher

    def health_check(self) -> dict:
        status = HealthChecker(
            subscriber=self._subscriber,
            log_sink=self._log_sink,
            timeseries_sink=self._timeseries_sink,
        ).check()
        result = status.to_dict()
        result["running"] = self._running
        return result

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "dispatcher": self._dispatcher.stats.to_dict() if self._dispatcher else None,
            "subscriber": self._subscriber.stats if self._subscriber else None,
        }


# Singleton
_bridge: Optional[BridgeApplication] = None


def get_bridge() -> Optional[BridgeApplication]:
    """Obtiene el bridge singleton."""
    return _bridge


def start_bridge(settings: Optional[Settings] = None) -> bool:
    """Inicia el bridge singleton."""
    global _bridge

    if _bridge is not None:
        return _bridge.is_running

    if settings is None:
        settings = get_settings()
        log_settings(settings)

    _bridge = BridgeApplication(settings)
    return _bridge.start()


def stop_bridge() -> None:
    """Detiene el bridge singleton."""
    global _bridge

    if _bridge is not None:
        _bridge.shutdown()
        _bridge = None
