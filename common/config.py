from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _default_env_file() -> str:
    # .env junto al directorio de trabajo; se puede sobrescribir con BRIDGE_ENV_FILE.
    return str(Path.cwd() / ".env")


def _require(var_name: str, error_message: str) -> str:
    value = os.getenv(var_name)
    if value is None or not value.strip():
        raise ValueError(error_message)
    return value


@dataclass(frozen=True)
class MqttSettings:
    broker_host: str
    broker_port: int
    username: Optional[str]
    password: Optional[str]
    client_id: str
    topic_filter: str
    connect_timeout: float
    keepalive: int
    reconnect_max_delay: int


@dataclass(frozen=True)
class KafkaSettings:
    brokers: str
    topic: str
    client_id: str
    reconnect_backoff_ms: int
    reconnect_backoff_max_ms: int
    flush_timeout: float


@dataclass(frozen=True)
class InfluxSettings:
    url: str
    token: str
    org: str
    bucket: str
    batch_size: int
    flush_interval_ms: int
    close_timeout: float


@dataclass(frozen=True)
class Settings:
    mqtt: MqttSettings
    kafka: KafkaSettings
    influx: InfluxSettings


def get_settings() -> Settings:
    # Carga el env file (si existe) sin pisar las variables reales del entorno.
    env_file = os.getenv("BRIDGE_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    mqtt = MqttSettings(
        broker_host=os.getenv("MQTT_BROKER_HOST", "localhost"),
        broker_port=int(os.getenv("MQTT_BROKER_PORT", "1883")),
        username=os.getenv("MQTT_USERNAME") or None,
        password=os.getenv("MQTT_PASSWORD") or None,
        client_id=os.getenv("MQTT_CLIENT_ID", f"telemetry-bridge-{int(time.time())}"),
        topic_filter=os.getenv("MQTT_TOPIC_FILTER", "sensors/#"),
        connect_timeout=float(os.getenv("MQTT_CONNECT_TIMEOUT", "10")),
        keepalive=int(os.getenv("MQTT_KEEPALIVE", "20")),
        reconnect_max_delay=int(os.getenv("MQTT_RECONNECT_MAX_DELAY", "120")),
    )

    # Backoff de reconexión: base 1 minuto, máximo 10 minutos.
    kafka = KafkaSettings(
        brokers=os.getenv("KAFKA_BROKERS", "localhost:9093"),
        topic=os.getenv("KAFKA_TOPIC", "sensores_cloud"),
        client_id=os.getenv("KAFKA_CLIENT_ID", "telemetry-bridge-kafka-client"),
        reconnect_backoff_ms=int(os.getenv("KAFKA_RECONNECT_BACKOFF_MS", "60000")),
        reconnect_backoff_max_ms=int(os.getenv("KAFKA_RECONNECT_BACKOFF_MAX_MS", "600000")),
        flush_timeout=float(os.getenv("KAFKA_FLUSH_TIMEOUT", "10")),
    )

    influx = InfluxSettings(
        url=os.getenv("INFLUX_URL", "http://localhost:8086"),
        token=_require("INFLUX_TOKEN", "InfluxDB write token is required."),
        org=_require("INFLUX_ORG", "InfluxDB organization is required."),
        bucket=_require("INFLUX_BUCKET", "InfluxDB bucket name is required."),
        batch_size=int(os.getenv("INFLUX_BATCH_SIZE", "500")),
        flush_interval_ms=int(os.getenv("INFLUX_FLUSH_INTERVAL_MS", "1000")),
        close_timeout=float(os.getenv("INFLUX_CLOSE_TIMEOUT", "10")),
    )

    return Settings(mqtt=mqtt, kafka=kafka, influx=influx)


def log_settings(settings: Settings) -> None:
    """Loguea la configuración cargada (sin exponer el token)."""
    logger.info("[CONFIG] Telemetry bridge configuration loaded:")
    logger.info("[CONFIG]   MQTT broker: %s:%d", settings.mqtt.broker_host, settings.mqtt.broker_port)
    logger.info("[CONFIG]   MQTT client id: %s", settings.mqtt.client_id)
    logger.info("[CONFIG]   MQTT topic filter: %s", settings.mqtt.topic_filter)
    logger.info("[CONFIG]   InfluxDB URL: %s", settings.influx.url)
    logger.info("[CONFIG]   InfluxDB org: %s", settings.influx.org)
    logger.info("[CONFIG]   InfluxDB bucket: %s", settings.influx.bucket)
    logger.info("[CONFIG]   InfluxDB token: %s", mask_secret(settings.influx.token))
    logger.info("[CONFIG]   Kafka brokers: %s", settings.kafka.brokers)
    logger.info("[CONFIG]   Kafka topic: %s", settings.kafka.topic)
    logger.info("[CONFIG]   Kafka client id: %s", settings.kafka.client_id)


def mask_secret(value: Optional[str]) -> str:
    return "****" if value else "Not Set"
