"""Transport layer - Recepción de datos MQTT."""

from .mqtt_subscriber import MQTTSubscriber, SubscriberState

__all__ = ["MQTTSubscriber", "SubscriberState"]
