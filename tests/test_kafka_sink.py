"""Tests del sink de Kafka."""

import logging
from unittest.mock import MagicMock, patch

import pytest

from telemetry_bridge.core.domain import PreconditionError
from telemetry_bridge.core.sinks import KafkaLogSink
from telemetry_bridge.core.sinks.kafka_sink import build_producer_config


KAFKA_LOGGER = "telemetry_bridge.core.sinks.kafka_sink"


class TestProducerConfig:
    def test_config_from_settings(self, kafka_settings):
        assert build_producer_config(kafka_settings) == {
            "bootstrap.servers": "localhost:9093",
            "client.id": "test-kafka-client",
            "reconnect.backoff.ms": 60000,
            "reconnect.backoff.max.ms": 600000,
        }

    def test_producer_created_once(self, kafka_settings):
        with patch("telemetry_bridge.core.sinks.kafka_sink.Producer") as producer_cls:
            sink = KafkaLogSink(kafka_settings)

        producer_cls.assert_called_once_with(build_producer_config(kafka_settings))
        assert sink.is_initialized

    def test_settings_required(self):
        with pytest.raises(PreconditionError):
            KafkaLogSink(None)


class TestSend:
    def test_send_produces_and_polls(self, kafka_sink, mock_producer, temperature_payload):
        kafka_sink.send("sensor_1", temperature_payload)

        mock_producer.produce.assert_called_once_with(
            "sensores_cloud",
            value=temperature_payload,
            key="sensor_1",
            on_delivery=kafka_sink._on_delivery,
        )
        mock_producer.poll.assert_called_once_with(0)

    def test_none_value_rejected(self, kafka_sink, mock_producer):
        with pytest.raises(PreconditionError):
            kafka_sink.send("sensor_1", None)

        mock_producer.produce.assert_not_called()

    def test_none_key_allowed(self, kafka_sink, mock_producer):
        kafka_sink.send(None, b"{}")

        assert mock_producer.produce.call_args.kwargs["key"] is None

    def test_uninitialized_producer_drops_with_warning(self, kafka_settings, caplog):
        with patch(
            "telemetry_bridge.core.sinks.kafka_sink.Producer",
            side_effect=Exception("bad config"),
        ):
            sink = KafkaLogSink(kafka_settings)

        assert not sink.is_initialized
        with caplog.at_level(logging.WARNING, logger=KAFKA_LOGGER):
            sink.send("sensor_1", b"{}")

        assert any("not initialized" in r.getMessage() for r in caplog.records)

    def test_full_local_queue_drops_message(self, kafka_sink, mock_producer, caplog):
        mock_producer.produce.side_effect = BufferError("queue full")

        with caplog.at_level(logging.WARNING, logger=KAFKA_LOGGER):
            kafka_sink.send("sensor_1", b"{}")

        mock_producer.poll.assert_not_called()
        assert any("queue full" in r.getMessage() for r in caplog.records)


class TestDeliveryCallback:
    def test_success_logged_at_debug(self, kafka_sink, caplog):
        msg = MagicMock()
        msg.topic.return_value = "sensores_cloud"
        msg.partition.return_value = 0
        msg.offset.return_value = 7

        with caplog.at_level(logging.DEBUG, logger=KAFKA_LOGGER):
            kafka_sink._on_delivery(None, msg)

        assert any("offset=7" in r.getMessage() for r in caplog.records)

    def test_failure_logged_as_error(self, kafka_sink, caplog):
        msg = MagicMock()
        msg.topic.return_value = "sensores_cloud"
        msg.key.return_value = b"sensor_1"

        with caplog.at_level(logging.ERROR, logger=KAFKA_LOGGER):
            kafka_sink._on_delivery("Broker: Not enough in-sync replicas", msg)

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert "in-sync" in errors[0].getMessage()


class TestClose:
    def test_close_flushes_with_timeout(self, kafka_sink, mock_producer):
        kafka_sink.close()

        mock_producer.flush.assert_called_once_with(10.0)
        assert not kafka_sink.is_initialized

    def test_close_is_idempotent(self, kafka_sink, mock_producer):
        kafka_sink.close()
        kafka_sink.close()

        assert mock_producer.flush.call_count == 1

    def test_remaining_messages_warned(self, kafka_sink, mock_producer, caplog):
        mock_producer.flush.return_value = 3

        with caplog.at_level(logging.WARNING, logger=KAFKA_LOGGER):
            kafka_sink.close()

        assert any("3 message(s)" in r.getMessage() for r in caplog.records)

    def test_send_after_close_is_dropped(self, kafka_sink, mock_producer):
        kafka_sink.close()
        kafka_sink.send("sensor_1", b"{}")

        mock_producer.produce.assert_not_called()

    def test_health_check(self, kafka_sink):
        assert kafka_sink.health_check()["initialized"] is True
        kafka_sink.close()
        health = kafka_sink.health_check()
        assert health["initialized"] is False
        assert health["closed"] is True
