"""Tests del suscriptor MQTT.

El cliente paho se reemplaza por un MagicMock; los callbacks se
invocan a mano como lo haría el hilo de red.
"""

import dataclasses
import logging
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest

from telemetry_bridge.core.domain import PreconditionError
from telemetry_bridge.core.transport import MQTTSubscriber, SubscriberState


MQTT_LOGGER = "telemetry_bridge.core.transport.mqtt_subscriber"


def _granted():
    rc = MagicMock()
    rc.is_failure = False
    return rc


def _rejected():
    rc = MagicMock()
    rc.is_failure = True
    return rc


@pytest.fixture
def handler() -> MagicMock:
    return MagicMock()


@pytest.fixture
def subscriber(mqtt_settings, mock_mqtt_client, handler) -> MQTTSubscriber:
    sub = MQTTSubscriber(mqtt_settings, client=mock_mqtt_client)
    sub.set_message_handler(handler)
    # loop_start dispara el CONNACK como haría el broker
    mock_mqtt_client.loop_start.side_effect = lambda: sub._on_connect(
        mock_mqtt_client, None, MagicMock(), 0, None
    )
    return sub


def _message(topic: str, payload: bytes) -> MagicMock:
    msg = MagicMock()
    msg.topic = topic
    msg.payload = payload
    return msg


# =============================================================================
# CONEXIÓN
# =============================================================================

class TestConnect:
    def test_handler_required(self, mqtt_settings, mock_mqtt_client):
        sub = MQTTSubscriber(mqtt_settings, client=mock_mqtt_client)

        with pytest.raises(PreconditionError):
            sub.connect()

        mock_mqtt_client.connect.assert_not_called()

    def test_connect_and_subscribe(self, subscriber, mock_mqtt_client):
        assert subscriber.connect() is True

        mock_mqtt_client.connect.assert_called_once_with("localhost", 1883, keepalive=20)
        mock_mqtt_client.reconnect_delay_set.assert_called_once_with(min_delay=1, max_delay=120)
        mock_mqtt_client.subscribe.assert_called_once_with("sensors/#", qos=1)
        assert subscriber.state == SubscriberState.CONNECTED

        subscriber._on_subscribe(mock_mqtt_client, None, 1, [_granted()], None)
        assert subscriber.state == SubscriberState.SUBSCRIBED
        assert subscriber.is_subscribed

    def test_socket_error_returns_false(self, subscriber, mock_mqtt_client):
        mock_mqtt_client.connect.side_effect = ConnectionRefusedError("refused")

        assert subscriber.connect() is False
        assert subscriber.state == SubscriberState.DISCONNECTED
        mock_mqtt_client.loop_start.assert_not_called()

    def test_connack_timeout_returns_false(self, mqtt_settings, mock_mqtt_client, handler):
        settings = dataclasses.replace(mqtt_settings, connect_timeout=0.05)
        sub = MQTTSubscriber(settings, client=mock_mqtt_client)
        sub.set_message_handler(handler)

        assert sub.connect() is False
        assert sub.state == SubscriberState.CONNECTING

    def test_refused_connack_does_not_subscribe(self, subscriber, mock_mqtt_client):
        subscriber._on_connect(mock_mqtt_client, None, MagicMock(), 5, None)

        mock_mqtt_client.subscribe.assert_not_called()
        assert subscriber.state == SubscriberState.DISCONNECTED

    def test_connect_after_close_rejected(self, subscriber):
        subscriber.close()

        with pytest.raises(PreconditionError):
            subscriber.connect()


# =============================================================================
# SUSCRIPCIÓN
# =============================================================================

class TestSubscribe:
    def test_not_connected_skips_subscribe(self, subscriber, mock_mqtt_client):
        mock_mqtt_client.is_connected.return_value = False
        subscriber.connect()
        mock_mqtt_client.subscribe.reset_mock()

        assert subscriber.subscribe() is False
        mock_mqtt_client.subscribe.assert_not_called()

    def test_subscribe_error_keeps_connected(self, subscriber, mock_mqtt_client, caplog):
        mock_mqtt_client.subscribe.return_value = (mqtt.MQTT_ERR_NO_CONN, None)

        with caplog.at_level(logging.ERROR, logger=MQTT_LOGGER):
            subscriber.connect()

        assert subscriber.state == SubscriberState.CONNECTED
        assert any("Error subscribing" in r.getMessage() for r in caplog.records)

    def test_rejected_suback_keeps_connected(self, subscriber, mock_mqtt_client):
        subscriber.connect()

        subscriber._on_subscribe(mock_mqtt_client, None, 1, [_rejected()], None)

        assert subscriber.state == SubscriberState.CONNECTED
        assert not subscriber.is_subscribed


# =============================================================================
# RECONEXIÓN
# =============================================================================

class TestReconnection:
    """Tras cada reconexión se vuelve a suscribir."""

    def test_resubscribes_after_reconnect(self, subscriber, mock_mqtt_client):
        subscriber.connect()
        subscriber._on_subscribe(mock_mqtt_client, None, 1, [_granted()], None)

        subscriber._on_disconnect(mock_mqtt_client, None, MagicMock(), 7, None)
        assert subscriber.state == SubscriberState.CONNECTION_LOST
        assert not subscriber.is_connected

        subscriber._on_connect(mock_mqtt_client, None, MagicMock(), 0, None)

        assert mock_mqtt_client.subscribe.call_count == 2
        assert subscriber.stats["reconnect_count"] == 1
        assert subscriber.state == SubscriberState.CONNECTED

    def test_disconnect_after_close_stays_closed(self, subscriber, mock_mqtt_client):
        subscriber.connect()
        subscriber.close()

        subscriber._on_disconnect(mock_mqtt_client, None, MagicMock(), 0, None)
        subscriber._on_connect(mock_mqtt_client, None, MagicMock(), 0, None)

        assert subscriber.state == SubscriberState.CLOSED


# =============================================================================
# MENSAJES
# =============================================================================

class TestMessages:
    def test_message_delegated_to_handler(self, subscriber, handler):
        subscriber._on_message(None, None, _message("sensors/temperature", b"{}"))

        handler.assert_called_once_with("sensors/temperature", b"{}")
        assert subscriber.stats["messages_received"] == 1

    def test_handler_exception_is_contained(self, subscriber, handler, caplog):
        handler.side_effect = RuntimeError("handler bug")

        with caplog.at_level(logging.ERROR, logger=MQTT_LOGGER):
            subscriber._on_message(None, None, _message("sensors/temperature", b"{}"))

        assert any("sensors/temperature" in r.getMessage() for r in caplog.records)


# =============================================================================
# CIERRE
# =============================================================================

class TestClose:
    def test_close_connected_client(self, subscriber, mock_mqtt_client):
        subscriber.connect()

        subscriber.close()

        mock_mqtt_client.disconnect.assert_called_once()
        mock_mqtt_client.loop_stop.assert_called_once()
        assert subscriber.state == SubscriberState.CLOSED

    def test_close_disconnected_client_only_stops_loop(self, subscriber, mock_mqtt_client):
        mock_mqtt_client.is_connected.return_value = False

        subscriber.close()

        mock_mqtt_client.disconnect.assert_not_called()
        mock_mqtt_client.loop_stop.assert_called_once()

    def test_close_is_idempotent(self, subscriber, mock_mqtt_client):
        subscriber.connect()

        subscriber.close()
        subscriber.close()

        assert mock_mqtt_client.disconnect.call_count == 1
        assert mock_mqtt_client.loop_stop.call_count == 1

    def test_disconnect_error_still_stops_loop(self, subscriber, mock_mqtt_client):
        mock_mqtt_client.disconnect.side_effect = OSError("socket closed")
        subscriber.connect()

        subscriber.close()

        mock_mqtt_client.loop_stop.assert_called_once()

    def test_health_check(self, subscriber, mock_mqtt_client):
        assert subscriber.health_check()["healthy"] is False

        subscriber.connect()
        subscriber._on_subscribe(mock_mqtt_client, None, 1, [_granted()], None)

        health = subscriber.health_check()
        assert health["healthy"] is True
        assert health["state"] == "subscribed"
