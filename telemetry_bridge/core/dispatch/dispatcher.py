"""Dispatcher de lecturas MQTT → Kafka + InfluxDB.

Flujo por mensaje:
  1. Decodificar payload (codec)
  2. Si es inválido: log + descartar, ningún sink se toca
  3. Kafka: send(sensorId, payload crudo)
  4. InfluxDB: write(reading, topic)

Los pasos 3 y 4 son independientes: un fallo en uno no impide ni
provoca el otro, y ninguna excepción vuelve al hilo de paho.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..codec.reading_codec import DecodeResult, decode_reading
from ..domain.errors import DecodeErrorKind, SinkUnavailable
from ..domain.reading import Reading
from ..monitoring.metrics import MESSAGES_DISPATCHED, SINK_CALL_FAILURES
from ..monitoring.stats import DispatchStats
from ..sinks.influx_sink import InfluxTimeSeriesSink
from ..sinks.kafka_sink import KafkaLogSink

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes], DecodeResult]

STATS_LOG_EVERY = 100


class SensorDataDispatcher:
    """Procesa mensajes MQTT y los reparte a ambos sinks.

    Es el handler registrado en MQTTSubscriber. No guarda estado
    mutable salvo los contadores, así que es reentrante.
    """

    def __init__(
        self,
        log_sink: KafkaLogSink,
        timeseries_sink: InfluxTimeSeriesSink,
        decoder: Optional[Decoder] = None,
    ):
        if log_sink is None:
            raise ValueError("log_sink cannot be None")
        if timeseries_sink is None:
            raise ValueError("timeseries_sink cannot be None")
        self._log_sink = log_sink
        self._timeseries_sink = timeseries_sink
        self._decode = decoder or decode_reading
        self._stats = DispatchStats()

    def on_message(self, topic: str, payload: bytes) -> None:
        """Procesa un mensaje MQTT."""
        self._stats.increment("received")
        self._stats.last_message_at = time.time()
        logger.debug("[DISPATCH] Processing message: topic=%s payload=%r", topic, payload)

        try:
            result = self._decode(payload)
        except Exception as e:
            logger.exception("[DISPATCH] Unexpected decode error (topic=%s): %s", topic, e)
            self._stats.increment("malformed")
            MESSAGES_DISPATCHED.labels(status=DecodeErrorKind.MALFORMED.value).inc()
            return

        if not result.valid:
            self._reject(topic, payload, result)
            return

        reading = result.reading
        self._send_to_log(reading.sensor_id, payload)
        self._write_to_timeseries(reading, topic)

        self._stats.increment("dispatched")
        MESSAGES_DISPATCHED.labels(status='dispatched').inc()

        if self._stats.dispatched % STATS_LOG_EVERY == 0:
            logger.info("[DISPATCH] %s", self._stats)

    __call__ = on_message

    def _reject(self, topic: str, payload: bytes, result: DecodeResult) -> None:
        error = result.error
        kind = error.kind if error is not None else DecodeErrorKind.MALFORMED
        if kind == DecodeErrorKind.MALFORMED:
            logger.error(
                "[DISPATCH] Decode error - topic=%s payload=%r error=%s",
                topic,
                payload,
                error,
            )
        else:
            logger.warning(
                "[DISPATCH] Skipping incomplete reading - topic=%s payload=%r error=%s",
                topic,
                payload,
                error,
            )
        self._stats.increment(kind.value)
        MESSAGES_DISPATCHED.labels(status=kind.value).inc()

    def _send_to_log(self, key: str, payload: bytes) -> None:
        try:
            self._log_sink.send(key, payload)
        except Exception as e:
            logger.exception("[DISPATCH] Kafka send failed (key=%s): %s", key, e)
            self._stats.increment("kafka_failures")
            SINK_CALL_FAILURES.labels(sink='kafka').inc()

    def _write_to_timeseries(self, reading: Reading, topic: str) -> None:
        try:
            self._timeseries_sink.write(reading, topic)
            return
        except SinkUnavailable as e:
            logger.error("[DISPATCH] InfluxDB write skipped (sensor=%s): %s", reading.sensor_id, e)
        except Exception as e:
            logger.exception("[DISPATCH] InfluxDB write failed (sensor=%s): %s", reading.sensor_id, e)
        self._stats.increment("influx_failures")
        SINK_CALL_FAILURES.labels(sink='influx').inc()

    @property
    def stats(self) -> DispatchStats:
        return self._stats
