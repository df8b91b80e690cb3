"""Home Assistant WebSocket subscription for live sensor readings.

HAG subscribes once to ``state_changed`` and forwards the changes of the
entities it watches to registered callbacks.  A single supervisor task owns
the socket: it reads frames until the connection drops, then re-runs the
handshake with exponential backoff.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection

from hag.integrations.ha_client import EntityState

logger = logging.getLogger(__name__)

_WS_PATH = "/api/websocket"
_SCHEMES = {"http://": "ws://", "https://": "wss://"}


@dataclass(slots=True)
class HAStateChange:
    """One ``state_changed`` event for a watched entity."""

    entity_id: str
    new_state: EntityState | None
    old_state: EntityState | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def domain(self) -> str:
        return self.entity_id.partition(".")[0]

    @property
    def value(self) -> float | None:
        if self.new_state is None:
            return None
        return self.new_state.numeric_state()


StateChangeCallback = Callable[[HAStateChange], Awaitable[None] | None]


class HAWebSocketError(Exception):
    """Connection, handshake or subscription failure."""


class HAWebSocketAuthError(HAWebSocketError):
    """Home Assistant answered ``auth_invalid``."""


def websocket_url(url: str) -> str:
    """Map a Home Assistant base URL onto its websocket endpoint."""
    base = url.rstrip("/")
    for http_scheme, ws_scheme in _SCHEMES.items():
        if base.startswith(http_scheme):
            base = ws_scheme + base.removeprefix(http_scheme)
            break
    else:
        if not base.startswith(("ws://", "wss://")):
            base = "ws://" + base
    return base if base.endswith(_WS_PATH) else base + _WS_PATH


class HAWebSocketClient:
    """Subscribes to Home Assistant state changes.

    Usage::

        ws = HAWebSocketClient("http://homeassistant.local:8123", token="ey...",
                               entity_filter={"sensor.indoor_temperature"})
        ws.add_callback(on_change)
        await ws.connect()
        ...
        await ws.disconnect()

    With ``entity_filter=None`` every entity is forwarded.
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        entity_filter: set[str] | None = None,
        max_retries: int = 5,
        retry_delay: float = 1.0,
        ping_interval: float = 30.0,
    ) -> None:
        self._ws_url = websocket_url(url)
        self._token = token
        self._entity_filter = entity_filter
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._ping_interval = ping_interval

        self._ws: ClientConnection | None = None
        self._connected = asyncio.Event()
        self._closing = False
        self._lock = asyncio.Lock()
        self._supervisor: asyncio.Task[None] | None = None
        self._next_id = 0
        self._callbacks: list[StateChangeCallback] = []
        self._background: set[asyncio.Task[Any]] = set()

    def __repr__(self) -> str:
        return f"<HAWebSocketClient url={self._ws_url!r} connected={self.connected}>"

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    # -- lifecycle --------------------------------------------------------------

    async def connect(self) -> None:
        """Run the first handshake inline, then hand the socket to the supervisor.

        Raises:
            HAWebSocketAuthError: If the token is rejected.
            HAWebSocketError: If the socket cannot be opened or subscribed.
        """
        async with self._lock:
            if self._supervisor is not None:
                return
            self._closing = False
            await self._handshake()
            self._supervisor = asyncio.create_task(self._supervise(), name="hag-ws")
            logger.info("Listening for state changes on %s", self._ws_url)

    async def disconnect(self) -> None:
        async with self._lock:
            self._closing = True
            self._connected.clear()
            supervisor, self._supervisor = self._supervisor, None
            pending = [t for t in (supervisor, *self._background) if t is not None]
            for task in pending:
                task.cancel()
            for task in pending:
                with suppress(asyncio.CancelledError):
                    await task
            self._background.clear()
            await self._close_socket()
            logger.info("Websocket subscription closed")

    # -- callbacks --------------------------------------------------------------

    def add_callback(self, callback: StateChangeCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def remove_callback(self, callback: StateChangeCallback) -> None:
        with suppress(ValueError):
            self._callbacks.remove(callback)

    def add_entity_to_filter(self, entity_id: str) -> None:
        """Forward *entity_id* too; does nothing when no filter is set."""
        if self._entity_filter is not None:
            self._entity_filter.add(entity_id)

    # -- handshake --------------------------------------------------------------

    async def _receive(self) -> dict[str, Any]:
        assert self._ws is not None  # noqa: S101 - set by _handshake()
        return json.loads(await self._ws.recv())

    async def _expect(self, expected: str) -> dict[str, Any]:
        msg = await self._receive()
        kind = msg.get("type")
        if kind == "auth_invalid":
            raise HAWebSocketAuthError(
                f"Access token rejected: {msg.get('message', 'invalid token')}"
            )
        if kind != expected:
            raise HAWebSocketError(f"Expected {expected!r} from Home Assistant, got {kind!r}")
        return msg

    async def _handshake(self) -> None:
        """Open the socket, authenticate and subscribe to ``state_changed``."""
        await self._close_socket()
        try:
            self._ws = await websockets.connect(
                self._ws_url,
                additional_headers={"User-Agent": "HAG/1.0"},
                ping_interval=self._ping_interval,
                ping_timeout=10,
                close_timeout=5,
            )
        except Exception as exc:
            raise HAWebSocketError(f"Cannot open {self._ws_url}: {exc}") from exc

        try:
            await self._expect("auth_required")
            await self._ws.send(json.dumps({"type": "auth", "access_token": self._token}))
            hello = await self._expect("auth_ok")
            logger.info("Websocket authenticated, Home Assistant %s", hello.get("ha_version", "?"))

            self._next_id += 1
            await self._ws.send(
                json.dumps(
                    {"id": self._next_id, "type": "subscribe_events", "event_type": "state_changed"}
                )
            )
            ack = await self._expect("result")
            if not ack.get("success"):
                raise HAWebSocketError(f"state_changed subscription refused: {ack.get('error')}")
        except websockets.ConnectionClosed as exc:
            await self._close_socket()
            raise HAWebSocketError(f"Socket closed during handshake: {exc}") from exc
        except HAWebSocketError:
            await self._close_socket()
            raise

        self._connected.set()

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            with suppress(Exception):
                await ws.close()

    # -- supervision ------------------------------------------------------------

    async def _supervise(self) -> None:
        while not self._closing:
            await self._read_frames()
            self._connected.clear()
            if self._closing or not await self._reestablish():
                return

    async def _read_frames(self) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            async for raw in ws:
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    logger.debug("Dropping non-JSON websocket frame")
                    continue
                change = self._parse_message(msg)
                if change is not None:
                    self._dispatch(change)
        except websockets.ConnectionClosed as exc:
            logger.warning("Websocket closed by Home Assistant: %s", exc)

    async def _reestablish(self) -> bool:
        """Retry the handshake with exponential backoff; False once given up."""
        for attempt in range(1, self._max_retries + 1):
            delay = self._retry_delay * 2 ** (attempt - 1)
            await asyncio.sleep(delay)
            if self._closing:
                return False
            try:
                await self._handshake()
            except HAWebSocketAuthError:
                logger.error("Websocket token rejected on reconnect, giving up")
                return False
            except HAWebSocketError as exc:
                logger.warning(
                    "Websocket reconnect %d/%d failed: %s", attempt, self._max_retries, exc
                )
                continue
            logger.info("Websocket reconnected after %d attempt(s)", attempt)
            return True
        logger.error("Websocket still down after %d attempts", self._max_retries)
        return False

    # -- events -----------------------------------------------------------------

    def _parse_message(self, msg: dict[str, Any]) -> HAStateChange | None:
        """Return the state change carried by *msg*, if it concerns a watched entity."""
        event = msg.get("event") or {}
        if msg.get("type") != "event" or event.get("event_type") != "state_changed":
            return None

        data = event.get("data") or {}
        entity_id = data.get("entity_id") or ""
        if not entity_id:
            return None
        if self._entity_filter is not None and entity_id not in self._entity_filter:
            return None

        def state(key: str) -> EntityState | None:
            raw = data.get(key)
            return EntityState.from_dict(raw) if raw else None

        return HAStateChange(entity_id, state("new_state"), state("old_state"))

    def _dispatch(self, change: HAStateChange) -> None:
        for callback in tuple(self._callbacks):
            try:
                outcome = callback(change)
            except Exception:
                logger.exception("State change callback failed for %s", change.entity_id)
                continue
            if asyncio.iscoroutine(outcome):
                task = asyncio.create_task(outcome)
                self._background.add(task)
                task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if not task.cancelled() and (exc := task.exception()) is not None:
            logger.error("Async state change callback failed: %s", exc)


__all__ = [
    "HAStateChange",
    "HAWebSocketAuthError",
    "HAWebSocketClient",
    "HAWebSocketError",
    "StateChangeCallback",
    "websocket_url",
]
