"""Device gateway abstraction and its Home Assistant implementation.

The controller only talks to a :class:`DeviceGateway`.  The Home Assistant
gateway combines the REST client (reads and service calls) with the
WebSocket client (push notifications) and translates their errors into the
gateway error hierarchy.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from hag.config import HassOptions
from hag.integrations.ha_client import (
    EntityState,
    HAClient,
    HAClientError,
    HAConnectionError,
    HANotFoundError,
)
from hag.integrations.ha_websocket import HAStateChange, HAWebSocketClient, HAWebSocketError

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Base exception for device gateway failures."""


class ReadingNotFoundError(GatewayError):
    """The requested entity does not exist."""


class GatewayUnavailableError(GatewayError):
    """The gateway cannot be reached or did not answer in time."""


@dataclass(frozen=True, slots=True)
class Reading:
    """A sensor value as returned by the gateway."""

    entity_id: str
    value: float | None
    raw: str
    as_of: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_entity_state(cls, state: EntityState) -> Reading:
        return cls(
            entity_id=state.entity_id,
            value=state.numeric_state(),
            raw=state.state,
        )


ReadingHandler = Callable[[str, Reading | None], Awaitable[None] | None]


@runtime_checkable
class DeviceGateway(Protocol):
    """What the controller needs from the outside world."""

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    def is_connected(self) -> bool: ...

    async def get_reading(self, entity_id: str) -> Reading: ...

    async def set_mode(self, device_id: str, mode: str) -> None: ...

    async def set_temperature(self, device_id: str, value: float) -> None: ...

    async def set_preset(self, device_id: str, label: str) -> None: ...

    def subscribe(self, entity_id: str, handler: ReadingHandler) -> None: ...


class HomeAssistantGateway:
    """:class:`DeviceGateway` backed by Home Assistant REST + WebSocket APIs."""

    def __init__(
        self,
        options: HassOptions,
        *,
        client: HAClient | None = None,
        websocket: HAWebSocketClient | None = None,
    ) -> None:
        self._options = options
        self._timeout = options.request_timeout
        self._client = client or HAClient(
            options.rest_url, options.token, timeout=options.request_timeout
        )
        self._subscriptions: dict[str, list[ReadingHandler]] = {}
        self._ws = websocket or HAWebSocketClient(
            options.ws_url or options.rest_url,
            options.token,
            entity_filter=set(),
            max_retries=options.max_retries,
            retry_delay=options.retry_delay_ms / 1000,
            ping_interval=options.ping_interval,
        )
        self._ws.add_callback(self._on_state_change)

    # -- lifecycle ------------------------------------------------------------

    async def connect(self) -> None:
        """Connect REST and WebSocket sessions.

        Raises:
            GatewayUnavailableError: If either connection fails.
        """
        try:
            await asyncio.wait_for(self._client.connect(), timeout=self._timeout)
            await asyncio.wait_for(self._ws.connect(), timeout=self._timeout)
        except TimeoutError as exc:
            raise GatewayUnavailableError(
                f"Timed out connecting to Home Assistant after {self._timeout}s"
            ) from exc
        except (HAClientError, HAWebSocketError) as exc:
            raise GatewayUnavailableError(str(exc)) from exc
        logger.info("Home Assistant gateway connected")

    async def disconnect(self) -> None:
        await self._ws.disconnect()
        await self._client.disconnect()

    def is_connected(self) -> bool:
        return self._client.connected and self._ws.connected

    # -- reads ----------------------------------------------------------------

    async def get_reading(self, entity_id: str) -> Reading:
        """Read the current value of *entity_id*.

        Raises:
            ReadingNotFoundError: If Home Assistant does not know the entity.
            GatewayUnavailableError: On connection failures or timeouts.
        """
        try:
            state = await asyncio.wait_for(
                self._client.get_state(entity_id), timeout=self._timeout
            )
        except HANotFoundError as exc:
            raise ReadingNotFoundError(f"Entity not found: {entity_id}") from exc
        except TimeoutError as exc:
            raise GatewayUnavailableError(f"Timed out reading {entity_id}") from exc
        except HAConnectionError as exc:
            raise GatewayUnavailableError(str(exc)) from exc
        except HAClientError as exc:
            raise GatewayError(str(exc)) from exc
        return Reading.from_entity_state(state)

    # -- actuation ------------------------------------------------------------

    async def _call(self, description: str, call: Awaitable[Any]) -> None:
        try:
            await asyncio.wait_for(call, timeout=self._timeout)
        except TimeoutError as exc:
            raise GatewayUnavailableError(f"Timed out: {description}") from exc
        except HAConnectionError as exc:
            raise GatewayUnavailableError(str(exc)) from exc
        except HAClientError as exc:
            raise GatewayError(f"{description}: {exc}") from exc

    async def set_mode(self, device_id: str, mode: str) -> None:
        await self._call(
            f"set_hvac_mode({device_id}, {mode})", self._client.set_hvac_mode(device_id, mode)
        )

    async def set_temperature(self, device_id: str, value: float) -> None:
        await self._call(
            f"set_temperature({device_id}, {value})",
            self._client.set_temperature(device_id, value),
        )

    async def set_preset(self, device_id: str, label: str) -> None:
        await self._call(
            f"set_preset_mode({device_id}, {label})",
            self._client.set_preset_mode(device_id, label),
        )

    # -- subscriptions --------------------------------------------------------

    def subscribe(self, entity_id: str, handler: ReadingHandler) -> None:
        """Call *handler* with each new reading of *entity_id*."""
        handlers = self._subscriptions.setdefault(entity_id, [])
        if handler not in handlers:
            handlers.append(handler)
        self._ws.add_entity_to_filter(entity_id)
        logger.debug("Subscribed to state changes of %s", entity_id)

    async def _on_state_change(self, change: HAStateChange) -> None:
        handlers = self._subscriptions.get(change.entity_id)
        if not handlers:
            return
        reading = (
            Reading.from_entity_state(change.new_state) if change.new_state is not None else None
        )
        for handler in list(handlers):
            try:
                result = handler(change.entity_id, reading)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Reading handler for %s failed", change.entity_id)


__all__ = [
    "DeviceGateway",
    "GatewayError",
    "GatewayUnavailableError",
    "HomeAssistantGateway",
    "Reading",
    "ReadingHandler",
    "ReadingNotFoundError",
]
