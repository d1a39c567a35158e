"""Delivery bindings for signed tokens."""
from .results import DeliveryResult, DeliveryStatus, Transport
from .http import HttpIngestClient
from .mqtt import ConnectionState, MqttLink, MqttTransport

__all__ = [
    "DeliveryResult",
    "DeliveryStatus",
    "Transport",
    "HttpIngestClient",
    "ConnectionState",
    "MqttLink",
    "MqttTransport",
]
