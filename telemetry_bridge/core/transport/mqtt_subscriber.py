"""Suscriptor MQTT para recepción de lecturas.

Máquina de estados:
  DISCONNECTED → CONNECTING → CONNECTED → SUBSCRIBED
  CONNECTION_LOST → CONNECTING (reconexión automática de paho)
  CLOSED (terminal)

Tras cada CONNACK (inicial o reconexión) se vuelve a suscribir: con
clean session el broker no conserva las suscripciones.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from common.config import MqttSettings

from ..domain.errors import PreconditionError
from ..monitoring.metrics import MQTT_CONNECTED, MQTT_RECONNECTS

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], None]

# QoS 1: at-least-once
SUBSCRIBE_QOS = 1


class SubscriberState(str, Enum):
    """Estados del suscriptor."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"
    CONNECTION_LOST = "connection_lost"
    CLOSED = "closed"


class MQTTSubscriber:
    """Cliente MQTT que entrega (topic, payload) a un handler.

    Responsabilidades:
    - Conexión con reconexión automática, timeout y keep-alive
    - (Re)suscripción al topic filter tras cada conexión
    - Delegación de mensajes al handler sin dejar escapar excepciones
    - Cierre idempotente
    """

    def __init__(
        self,
        settings: MqttSettings,
        client: Optional[mqtt.Client] = None,
    ):
        if settings is None:
            raise PreconditionError("MQTT settings cannot be None")
        self._settings = settings
        self._client: Optional[mqtt.Client] = client
        self._message_handler: Optional[MessageHandler] = None

        self._state = SubscriberState.DISCONNECTED
        self._state_lock = threading.RLock()
        self._connected_event = threading.Event()
        self._has_connected = False
        self._pending_subscribe_mid: Optional[int] = None

        self._reconnect_count = 0
        self._messages_received = 0
        self._last_message_at: float = 0

    def set_message_handler(self, handler: MessageHandler) -> None:
        """Configura el handler de mensajes."""
        self._message_handler = handler

    def _create_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self._settings.client_id,
            protocol=mqtt.MQTTv311,
            clean_session=True,
        )
        if self._settings.username and self._settings.password:
            client.username_pw_set(self._settings.username, self._settings.password)
        return client

    def connect(self) -> bool:
        """Conecta al broker e inicia el loop de red.

        Returns:
            True si se recibió el CONNACK dentro del timeout

        Raises:
            PreconditionError: si no hay handler registrado o el
                suscriptor ya fue cerrado
        """
        if self._message_handler is None:
            raise PreconditionError("Message handler must be set before connecting")

        with self._state_lock:
            if self._state == SubscriberState.CLOSED:
                raise PreconditionError("Subscriber is closed")

            if self._client is None:
                self._client = self._create_client()
            client = self._client

            client.on_connect = self._on_connect
            client.on_disconnect = self._on_disconnect
            client.on_message = self._on_message
            client.on_subscribe = self._on_subscribe
            client.connect_timeout = self._settings.connect_timeout
            client.reconnect_delay_set(min_delay=1, max_delay=self._settings.reconnect_max_delay)

            self._connected_event.clear()
            self._state = SubscriberState.CONNECTING

        logger.info(
            "[MQTT] Connecting to %s:%d",
            self._settings.broker_host,
            self._settings.broker_port,
        )
        try:
            client.connect(
                self._settings.broker_host,
                self._settings.broker_port,
                keepalive=self._settings.keepalive,
            )
        except Exception as e:
            logger.error("[MQTT] Connection failed: %s", e)
            self._set_state(SubscriberState.DISCONNECTED)
            return False

        client.loop_start()

        # Esperar CONNACK
        if self._connected_event.wait(timeout=self._settings.connect_timeout):
            return True

        logger.error(
            "[MQTT] Connection timeout after %.1fs (reconnect continues in background)",
            self._settings.connect_timeout,
        )
        return False

    def subscribe(self) -> bool:
        """Suscribe al topic filter configurado (QoS 1).

        Solo se intenta estando conectado. Si falla queda CONNECTED sin
        suscripción; la próxima reconexión lo vuelve a intentar.
        """
        client = self._client
        with self._state_lock:
            connected = self._state in (SubscriberState.CONNECTED, SubscriberState.SUBSCRIBED)
        if client is None or not connected or not client.is_connected():
            logger.warning("[MQTT] Cannot subscribe, client not connected")
            return False

        topic_filter = self._settings.topic_filter
        try:
            logger.info("[MQTT] Subscribing to topic filter: %s", topic_filter)
            result, mid = client.subscribe(topic_filter, qos=SUBSCRIBE_QOS)
        except Exception as e:
            logger.error("[MQTT] Error subscribing to '%s': %s", topic_filter, e)
            return False

        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error(
                "[MQTT] Error subscribing to '%s': %s",
                topic_filter,
                mqtt.error_string(result),
            )
            return False

        self._pending_subscribe_mid = mid
        return True

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback de conexión (inicial o reconexión)."""
        if reason_code != 0:
            logger.error("[MQTT] Connection refused: %s", reason_code)
            return

        with self._state_lock:
            if self._state == SubscriberState.CLOSED:
                return
            reconnect = self._has_connected
            self._has_connected = True
            self._state = SubscriberState.CONNECTED

        if reconnect:
            self._reconnect_count += 1
            MQTT_RECONNECTS.inc()
        MQTT_CONNECTED.set(1)
        logger.info(
            "[MQTT] Connection %scomplete to %s:%d",
            "re" if reconnect else "",
            self._settings.broker_host,
            self._settings.broker_port,
        )
        self._connected_event.set()

        # Suscripción incondicional tras cada conexión
        self.subscribe()

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        """Callback de SUBACK."""
        failures = [rc for rc in reason_code_list if getattr(rc, "is_failure", False)]
        if failures:
            logger.error(
                "[MQTT] Subscription to '%s' rejected: %s",
                self._settings.topic_filter,
                ", ".join(str(rc) for rc in failures),
            )
            return

        with self._state_lock:
            if self._state == SubscriberState.CONNECTED:
                self._state = SubscriberState.SUBSCRIBED
        logger.info("[MQTT] Subscribed to %s", self._settings.topic_filter)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Callback de desconexión."""
        MQTT_CONNECTED.set(0)
        with self._state_lock:
            if self._state == SubscriberState.CLOSED:
                logger.info("[MQTT] Disconnected")
                return
            self._state = SubscriberState.CONNECTION_LOST
        # paho reconecta solo mientras el loop siga activo
        logger.warning("[MQTT] Connection lost (%s), waiting for automatic reconnect", reason_code)

    def _on_message(self, client, userdata, msg):
        """Callback de mensaje - delega al handler."""
        self._messages_received += 1
        self._last_message_at = time.time()

        handler = self._message_handler
        if handler is None:
            logger.warning("[MQTT] No message handler set for message on topic %s", msg.topic)
            return

        try:
            handler(msg.topic, msg.payload)
        except Exception as e:
            # Nunca propagar: mataría el hilo de red de paho
            logger.exception("[MQTT] Error processing message from topic %s: %s", msg.topic, e)

    def close(self) -> None:
        """Desconecta y libera el cliente. Idempotente."""
        with self._state_lock:
            client = self._client
            self._client = None
            self._state = SubscriberState.CLOSED
        MQTT_CONNECTED.set(0)

        if client is None:
            return

        try:
            if client.is_connected():
                logger.info("[MQTT] Disconnecting client...")
                try:
                    client.disconnect()
                    logger.info("[MQTT] Client disconnected successfully")
                except Exception as e:
                    logger.error("[MQTT] Error disconnecting client: %s", e)
        finally:
            self._release(client)

    @staticmethod
    def _release(client: mqtt.Client) -> None:
        try:
            client.loop_stop()
        except Exception as e:
            logger.error("[MQTT] Error stopping network loop: %s", e)

    def _set_state(self, state: SubscriberState) -> None:
        with self._state_lock:
            if self._state != SubscriberState.CLOSED:
                self._state = state

    @property
    def state(self) -> SubscriberState:
        with self._state_lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state in (SubscriberState.CONNECTED, SubscriberState.SUBSCRIBED)

    @property
    def is_subscribed(self) -> bool:
        return self.state == SubscriberState.SUBSCRIBED

    @property
    def stats(self) -> dict:
        return {
            "state": self.state.value,
            "broker": f"{self._settings.broker_host}:{self._settings.broker_port}",
            "topic_filter": self._settings.topic_filter,
            "messages_received": self._messages_received,
            "reconnect_count": self._reconnect_count,
            "last_message_at": self._last_message_at,
        }

    def health_check(self) -> dict:
        return {
            "healthy": self.is_subscribed,
            "state": self.state.value,
            "connected": self.is_connected,
            "reconnect_count": self._reconnect_count,
            "last_message_age_seconds": time.time() - self._last_message_at if self._last_message_at > 0 else None,
        }
