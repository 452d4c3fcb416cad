"""Sink de series temporales: escribe lecturas como puntos en InfluxDB.

Usa el write API en modo batching: write() solo encola el punto y un
worker en background hace el flush. Si el cliente no está inicializado
(primer arranque fallido o fallo previo) la siguiente escritura intenta
reinicializarlo bajo un único lock.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from influxdb_client import InfluxDBClient, Point, WriteOptions, WritePrecision
from influxdb_client.client.write_api import WriteApi

from common.config import InfluxSettings

from ..domain.errors import PreconditionError, SinkUnavailable
from ..domain.reading import Reading, UNKNOWN_TAG
from ..monitoring.metrics import INFLUX_BATCHES, INFLUX_REINITS

logger = logging.getLogger(__name__)

SINK_NAME = "influx"


def create_influx_client(settings: InfluxSettings) -> InfluxDBClient:
    """Factory por defecto del cliente InfluxDB."""
    return InfluxDBClient(url=settings.url, token=settings.token, org=settings.org)


def build_point(reading: Reading, origin_topic: Optional[str]) -> Point:
    """Construye el punto para una lectura.

    measurement = sensor_type
    tags: sensorId, location, originTopic, sensorType
    fields: value, timestamp
    time: timestamp de la lectura en milisegundos
    """
    return (
        Point(reading.sensor_type)
        .tag("sensorId", reading.sensor_id)
        .tag("location", reading.location_or_default)
        .tag("originTopic", origin_topic or UNKNOWN_TAG)
        .tag("sensorType", reading.sensor_type)
        .field("value", float(reading.value))
        .field("timestamp", int(reading.timestamp))
        .time(int(reading.timestamp), WritePrecision.MS)
    )


class InfluxTimeSeriesSink:
    """Escribe lecturas en InfluxDB con el write API no bloqueante.

    Responsabilidades:
    - Inicializar cliente + ping + write API (sin lanzar si falla)
    - Reinicialización lazy y serializada en write()
    - Encolar puntos (el flush ocurre en background)
    - Flush acotado al cerrar
    """

    def __init__(
        self,
        settings: InfluxSettings,
        client_factory: Optional[Callable[[InfluxSettings], InfluxDBClient]] = None,
    ):
        if settings is None:
            raise PreconditionError("InfluxDB settings cannot be None")
        self._settings = settings
        self._client_factory = client_factory or create_influx_client
        self._client: Optional[InfluxDBClient] = None
        self._write_api: Optional[WriteApi] = None
        self._lock = threading.Lock()
        self._closed = False
        self._reinit_count = 0

        self._initialize_client()

    def _initialize_client(self) -> None:
        """Crea cliente y write API. Si falla deja el sink sin inicializar."""
        client = None
        try:
            logger.info("[INFLUX] Initializing client for URL: %s", self._settings.url)
            client = self._client_factory(self._settings)

            if not client.ping():
                logger.error("[INFLUX] Ping failed for %s", self._settings.url)
                self._close_quietly(client)
                self._client = None
                self._write_api = None
                return
            logger.info("[INFLUX] Connection successful (ping ok)")

            write_api = client.write_api(
                write_options=WriteOptions(
                    batch_size=self._settings.batch_size,
                    flush_interval=self._settings.flush_interval_ms,
                ),
                success_callback=self._on_batch_success,
                error_callback=self._on_batch_error,
                retry_callback=self._on_batch_retry,
            )
        except Exception as e:
            logger.error("[INFLUX] Failed to initialize client: %s", e)
            if client is not None:
                self._close_quietly(client)
            self._client = None
            self._write_api = None
            return

        self._client = client
        self._write_api = write_api

    def write(self, reading: Reading, origin_topic: Optional[str]) -> None:
        """Encola una lectura para escritura en background.

        Args:
            reading: Lectura decodificada; no puede ser None
            origin_topic: Topic MQTT de origen (tag); None → "unknown"

        Raises:
            PreconditionError: si reading es None
            SinkUnavailable: si el cliente no se pudo reinicializar
        """
        if reading is None:
            raise PreconditionError("Reading cannot be None")

        if not reading.is_complete:
            logger.warning("[INFLUX] Incomplete reading received, skipping write: %s", reading.to_log_dict())
            return

        write_api = self._ensure_write_api()
        point = build_point(reading, origin_topic)

        logger.debug("[INFLUX] Queueing point: %s", point.to_line_protocol())
        write_api.write(
            bucket=self._settings.bucket,
            org=self._settings.org,
            record=point,
        )

    def _ensure_write_api(self) -> WriteApi:
        """Devuelve el write API, reinicializando si hace falta.

        Doble chequeo: solo el primer hilo que encuentra el cliente
        ausente lo reconstruye; el resto espera el lock y reutiliza.
        """
        write_api = self._write_api
        if write_api is not None:
            return write_api

        with self._lock:
            if self._closed:
                raise SinkUnavailable(SINK_NAME, "sink is closed")

            if self._write_api is None:
                logger.warning("[INFLUX] Client/write API not initialized. Attempting to reinitialize...")
                self._reinit_count += 1
                self._initialize_client()
                if self._write_api is None:
                    INFLUX_REINITS.labels(status='failed').inc()
                    raise SinkUnavailable(SINK_NAME, "client could not be initialized")
                INFLUX_REINITS.labels(status='success').inc()

            return self._write_api

    def _on_batch_success(self, conf, data) -> None:
        INFLUX_BATCHES.labels(status='success').inc()
        logger.debug("[INFLUX] Batch written: bucket=%s", conf[0] if conf else None)

    def _on_batch_error(self, conf, data, exception) -> None:
        INFLUX_BATCHES.labels(status='failed').inc()
        logger.error("[INFLUX] Batch write failed: bucket=%s error=%s", conf[0] if conf else None, exception)

    def _on_batch_retry(self, conf, data, exception) -> None:
        INFLUX_BATCHES.labels(status='retry').inc()
        logger.warning("[INFLUX] Batch write retry: bucket=%s error=%s", conf[0] if conf else None, exception)

    def close(self) -> None:
        """Flush del buffer (con timeout) y cierre del cliente. Idempotente."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            client = self._client
            write_api = self._write_api
            self._client = None
            self._write_api = None

        if client is None:
            return

        logger.info("[INFLUX] Closing client (flushing writes)...")
        if write_api is not None:
            self._flush_with_timeout(write_api)
        self._close_quietly(client)
        logger.info("[INFLUX] Client closed.")

    def _flush_with_timeout(self, write_api: WriteApi) -> None:
        # WriteApi.close() espera a vaciar el batch sin límite de tiempo
        flusher = threading.Thread(
            target=self._close_write_api,
            args=(write_api,),
            name="influx-flush",
            daemon=True,
        )
        flusher.start()
        flusher.join(timeout=self._settings.close_timeout)
        if flusher.is_alive():
            logger.warning(
                "[INFLUX] Flush did not finish within %.1fs; pending points discarded",
                self._settings.close_timeout,
            )

    @staticmethod
    def _close_write_api(write_api: WriteApi) -> None:
        try:
            write_api.close()
        except Exception as e:
            logger.error("[INFLUX] Error flushing write API: %s", e)

    @staticmethod
    def _close_quietly(client: InfluxDBClient) -> None:
        try:
            client.close()
        except Exception as e:
            logger.warning("[INFLUX] Error closing client: %s", e)

    @property
    def is_initialized(self) -> bool:
        return self._write_api is not None

    @property
    def reinit_count(self) -> int:
        return self._reinit_count

    def health_check(self) -> dict:
        return {
            "initialized": self.is_initialized,
            "closed": self._closed,
            "url": self._settings.url,
            "bucket": self._settings.bucket,
            "reinit_count": self._reinit_count,
        }
