"""Sink de log: publica el payload crudo a un topic de Kafka.

Política best-effort / at-most-once: si el producer no se pudo crear
el mensaje se descarta con un warning, sin reintentos ni cola local.
Los reintentos de red y el backoff de reconexión quedan en manos de
librdkafka (reconnect.backoff.ms / reconnect.backoff.max.ms).
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from confluent_kafka import Producer

from common.config import KafkaSettings

from ..domain.errors import PreconditionError
from ..monitoring.metrics import KAFKA_DELIVERIES

logger = logging.getLogger(__name__)


def build_producer_config(settings: KafkaSettings) -> dict[str, Any]:
    """Configuración del producer a partir de los settings."""
    return {
        "bootstrap.servers": settings.brokers,
        "client.id": settings.client_id,
        "reconnect.backoff.ms": settings.reconnect_backoff_ms,
        "reconnect.backoff.max.ms": settings.reconnect_backoff_max_ms,
    }


class KafkaLogSink:
    """Publica lecturas crudas a Kafka de forma asíncrona.

    Responsabilidades:
    - Crear el producer (una sola vez, en el constructor)
    - Enviar (key=sensorId, value=payload) sin bloquear al llamador
    - Loguear el resultado de cada entrega vía callback
    - Flush acotado al cerrar
    """

    def __init__(
        self,
        settings: KafkaSettings,
        producer: Optional[Producer] = None,
    ):
        if settings is None:
            raise PreconditionError("Kafka settings cannot be None")
        self._settings = settings
        self._lock = threading.Lock()
        self._closed = False
        self._producer: Optional[Producer] = producer

        if self._producer is None:
            self._initialize_producer()

    def _initialize_producer(self) -> None:
        config = build_producer_config(self._settings)
        try:
            logger.info("[KAFKA] Initializing producer for brokers: %s", self._settings.brokers)
            self._producer = Producer(config)
        except Exception as e:
            logger.error("[KAFKA] Failed to initialize producer: %s", e)
            self._producer = None

    def send(self, key: Optional[str], value: bytes) -> None:
        """Envía un mensaje al topic configurado.

        Args:
            key: Clave del registro (sensorId) para afinidad de partición
            value: Payload crudo; no puede ser None

        Raises:
            PreconditionError: si value es None
        """
        if value is None:
            raise PreconditionError("Kafka message value cannot be None")

        producer = self._producer
        if producer is None:
            logger.warning(
                "[KAFKA] Producer not initialized. Cannot send message to topic '%s'",
                self._settings.topic,
            )
            return

        logger.debug("[KAFKA] Attempting send: topic=%s key=%s", self._settings.topic, key)
        try:
            producer.produce(
                self._settings.topic,
                value=value,
                key=key,
                on_delivery=self._on_delivery,
            )
        except BufferError:
            # Cola local de librdkafka llena
            logger.warning(
                "[KAFKA] Local queue full, dropping message: topic=%s key=%s",
                self._settings.topic,
                key,
            )
            KAFKA_DELIVERIES.labels(status='dropped').inc()
            return

        # Atiende callbacks pendientes sin bloquear
        producer.poll(0)

    def _on_delivery(self, err, msg) -> None:
        """Callback de entrega (hilo de librdkafka vía poll/flush)."""
        if err is None:
            KAFKA_DELIVERIES.labels(status='success').inc()
            logger.debug(
                "[KAFKA] Send successful: topic=%s partition=%s offset=%s",
                msg.topic(),
                msg.partition(),
                msg.offset(),
            )
        else:
            KAFKA_DELIVERIES.labels(status='failed').inc()
            logger.error(
                "[KAFKA] Send failed: topic=%s key=%s error=%s",
                msg.topic() if msg is not None else self._settings.topic,
                msg.key() if msg is not None else None,
                err,
            )

    def close(self) -> None:
        """Flush acotado y liberación del producer. Idempotente."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            producer = self._producer
            self._producer = None

        if producer is None:
            return

        logger.info("[KAFKA] Closing producer (flushing, timeout=%.1fs)...", self._settings.flush_timeout)
        try:
            remaining = producer.flush(self._settings.flush_timeout)
            if remaining:
                logger.warning("[KAFKA] %d message(s) discarded after flush timeout", remaining)
        except Exception as e:
            logger.error("[KAFKA] Error flushing producer: %s", e)
        logger.info("[KAFKA] Producer closed.")

    @property
    def is_initialized(self) -> bool:
        return self._producer is not None

    @property
    def topic(self) -> str:
        return self._settings.topic

    def health_check(self) -> dict:
        return {
            "initialized": self.is_initialized,
            "closed": self._closed,
            "topic": self._settings.topic,
            "brokers": self._settings.brokers,
        }
