"""Fixtures compartidas."""

from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest

from common.config import InfluxSettings, KafkaSettings, MqttSettings
from telemetry_bridge.core.domain.reading import Reading
from telemetry_bridge.core.sinks.influx_sink import InfluxTimeSeriesSink
from telemetry_bridge.core.sinks.kafka_sink import KafkaLogSink


TEMPERATURE_PAYLOAD = (
    b'{"sensorType":"temperature","location":"growlab","sensorId":"sensor_1",'
    b'"value":24.5,"timestamp":1700000000000}'
)


@pytest.fixture
def mqtt_settings() -> MqttSettings:
    return MqttSettings(
        broker_host="localhost",
        broker_port=1883,
        username=None,
        password=None,
        client_id="test-client",
        topic_filter="sensors/#",
        connect_timeout=1.0,
        keepalive=20,
        reconnect_max_delay=120,
    )


@pytest.fixture
def kafka_settings() -> KafkaSettings:
    return KafkaSettings(
        brokers="localhost:9093",
        topic="sensores_cloud",
        client_id="test-kafka-client",
        reconnect_backoff_ms=60000,
        reconnect_backoff_max_ms=600000,
        flush_timeout=10.0,
    )


@pytest.fixture
def influx_settings() -> InfluxSettings:
    return InfluxSettings(
        url="http://localhost:8086",
        token="new-token",
        org="tg-cannabis",
        bucket="sensor-data",
        batch_size=500,
        flush_interval_ms=1000,
        close_timeout=1.0,
    )


@pytest.fixture
def temperature_payload() -> bytes:
    return TEMPERATURE_PAYLOAD


@pytest.fixture
def temperature_reading() -> Reading:
    return Reading(
        sensor_type="temperature",
        sensor_id="sensor_1",
        value=24.5,
        timestamp=1700000000000,
        location="growlab",
    )


@pytest.fixture
def mock_producer() -> MagicMock:
    """Mock de confluent_kafka.Producer."""
    producer = MagicMock()
    producer.flush.return_value = 0
    return producer


@pytest.fixture
def mock_write_api() -> MagicMock:
    return MagicMock()


@pytest.fixture
def mock_influx_client(mock_write_api) -> MagicMock:
    """Mock de InfluxDBClient con ping ok."""
    client = MagicMock()
    client.ping.return_value = True
    client.write_api.return_value = mock_write_api
    return client


@pytest.fixture
def kafka_sink(kafka_settings, mock_producer) -> KafkaLogSink:
    return KafkaLogSink(kafka_settings, producer=mock_producer)


@pytest.fixture
def influx_sink(influx_settings, mock_influx_client) -> InfluxTimeSeriesSink:
    return InfluxTimeSeriesSink(influx_settings, client_factory=lambda settings: mock_influx_client)


@pytest.fixture
def mock_mqtt_client() -> MagicMock:
    """Mock de paho Client conectado y con subscribe exitoso."""
    client = MagicMock()
    client.is_connected.return_value = True
    client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 1)
    return client
