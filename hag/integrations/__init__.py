"""HAG integration clients."""

from .gateway import (
    DeviceGateway,
    GatewayError,
    GatewayUnavailableError,
    HomeAssistantGateway,
    Reading,
    ReadingNotFoundError,
)
from .ha_client import EntityState, HAClient
from .ha_websocket import HAStateChange, HAWebSocketClient

__all__ = [
    "DeviceGateway",
    "EntityState",
    "GatewayError",
    "GatewayUnavailableError",
    "HAClient",
    "HAStateChange",
    "HAWebSocketClient",
    "HomeAssistantGateway",
    "Reading",
    "ReadingNotFoundError",
]
