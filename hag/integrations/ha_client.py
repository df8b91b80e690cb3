"""Home Assistant REST API client for HAG.

Only the slice of the REST API the HVAC controller needs: probing the API,
reading entity states and calling ``climate`` services.  HTTP failures are
mapped onto a small exception hierarchy so callers never see httpx types.
"""

from __future__ import annotations

import logging
import math
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_UNAVAILABLE_STATES = frozenset({"unavailable", "unknown", ""})
_DETAIL_LIMIT = 300


class HAClientError(Exception):
    """Base class for REST client failures."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class HAConnectionError(HAClientError):
    """Home Assistant could not be reached or did not answer in time."""


class HAAuthenticationError(HAClientError):
    """Missing or rejected access token."""


class HANotFoundError(HAClientError):
    """Unknown entity or service."""


class HAServiceError(HAClientError):
    """Any other non-success response."""


@dataclass(slots=True)
class EntityState:
    """One entity as reported by ``/api/states/<entity_id>``."""

    entity_id: str
    state: str
    attributes: dict[str, Any] = field(default_factory=dict)
    last_changed: str = ""
    last_updated: str = ""

    @property
    def domain(self) -> str:
        return self.entity_id.partition(".")[0]

    @property
    def available(self) -> bool:
        return self.state not in _UNAVAILABLE_STATES

    @property
    def unit(self) -> str | None:
        return self.attributes.get("unit_of_measurement")

    def numeric_state(self) -> float | None:
        """Return the state as a float, or ``None`` when it is not numeric."""
        if not self.available:
            return None
        try:
            value = float(self.state)
        except (TypeError, ValueError):
            return None
        return None if math.isnan(value) else value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntityState:
        raw_state = data.get("state")
        return cls(
            entity_id=str(data.get("entity_id") or ""),
            state="" if raw_state is None else str(raw_state),
            attributes=dict(data.get("attributes") or {}),
            last_changed=str(data.get("last_changed") or ""),
            last_updated=str(data.get("last_updated") or ""),
        )


def _error_for(status: int, detail: str, prefix: str) -> HAClientError:
    if status == 401:
        return HAAuthenticationError(
            f"{prefix}Authentication failed (401), check the access token", status_code=status
        )
    if status == 404:
        return HANotFoundError(f"{prefix}Resource not found (404): {detail}", status_code=status)
    kind = "Client error" if status < 500 else "Server error"
    return HAServiceError(f"{prefix}{kind} {status}: {detail}", status_code=status)


class HAClient:
    """Async Home Assistant REST client.

    Usage::

        async with HAClient("http://homeassistant.local:8123", token="ey...") as client:
            state = await client.get_state("sensor.indoor_temperature")
            await client.set_hvac_mode("climate.living_room", "heat")

    ``transport`` lets tests plug in an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        timeout: float = 15.0,
        verify_ssl: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._connected = False

    async def __aenter__(self) -> HAClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.disconnect()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def base_url(self) -> str:
        return self._base_url

    # -- session ----------------------------------------------------------------

    def _open_session(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._token}",
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
            verify=self._verify_ssl,
            transport=self._transport,
        )

    async def connect(self) -> None:
        """Open the HTTP session and check ``/api/``.

        Raises:
            HAAuthenticationError: If the token is missing or rejected.
            HAConnectionError: If Home Assistant cannot be reached.
        """
        if self._connected:
            return
        if not self._token:
            raise HAAuthenticationError("A Home Assistant long-lived access token is required")

        self._http = self._open_session()
        logger.info("Connecting to Home Assistant REST API at %s", self._base_url)
        try:
            response = await self._send("GET", "/api/", context="connect")
        except HAClientError:
            await self.disconnect()
            raise

        self._connected = True
        logger.info(
            "Home Assistant REST API ready (%s)",
            response.json().get("message", "ok"),
        )

    async def disconnect(self) -> None:
        self._connected = False
        http, self._http = self._http, None
        if http is None:
            return
        with suppress(Exception):
            await http.aclose()
        logger.info("Home Assistant REST session closed")

    # -- requests ---------------------------------------------------------------

    async def _send(
        self, method: str, path: str, *, json: Any = None, context: str = ""
    ) -> httpx.Response:
        assert self._http is not None  # noqa: S101 - opened by connect()
        label = context or f"{method} {path}"
        try:
            response = await self._http.request(method, path, json=json)
        except httpx.ConnectError as exc:
            self._connected = False
            msg = f"Cannot reach Home Assistant at {self._base_url}: {exc}"
            logger.error(msg)
            raise HAConnectionError(msg) from exc
        except httpx.TimeoutException as exc:
            msg = f"[{label}] Home Assistant did not answer within {self._timeout}s"
            logger.error(msg)
            raise HAConnectionError(msg) from exc

        if not response.is_success:
            error = _error_for(
                response.status_code, response.text[:_DETAIL_LIMIT], f"[{label}] "
            )
            logger.log(
                logging.WARNING if isinstance(error, HANotFoundError) else logging.ERROR,
                "%s",
                error,
            )
            raise error
        return response

    async def _request(
        self, method: str, path: str, *, json: Any = None, context: str = ""
    ) -> httpx.Response:
        """Send a request, connecting first when needed."""
        if self._http is None:
            await self.connect()
        logger.debug("%s %s", method, path)
        return await self._send(method, path, json=json, context=context)

    # -- API --------------------------------------------------------------------

    async def get_state(self, entity_id: str) -> EntityState:
        """Fetch one entity.

        Raises:
            HANotFoundError: If Home Assistant does not know *entity_id*.
        """
        response = await self._request(
            "GET", f"/api/states/{entity_id}", context=f"get_state({entity_id})"
        )
        state = EntityState.from_dict(response.json())
        logger.debug("%s = %r", entity_id, state.state)
        return state

    async def call_service(
        self,
        domain: str,
        service: str,
        data: dict[str, Any] | None = None,
        target: dict[str, Any] | None = None,
    ) -> Any:
        """Call ``domain.service``; *target* keys are merged into the payload.

        Returns the decoded JSON body (usually the changed states) or ``None``.
        """
        payload = {**(data or {}), **(target or {})}
        logger.info("Calling %s.%s (%s)", domain, service, target or "no target")
        response = await self._request(
            "POST",
            f"/api/services/{domain}/{service}",
            json=payload,
            context=f"{domain}.{service}",
        )
        if response.headers.get("content-type", "").startswith("application/json"):
            return response.json()
        return None

    async def _climate(self, service: str, entity_id: str, **data: Any) -> Any:
        return await self.call_service("climate", service, data, {"entity_id": entity_id})

    async def set_hvac_mode(self, entity_id: str, mode: str) -> Any:
        return await self._climate("set_hvac_mode", entity_id, hvac_mode=mode)

    async def set_temperature(self, entity_id: str, temperature: float) -> Any:
        return await self._climate("set_temperature", entity_id, temperature=temperature)

    async def set_preset_mode(self, entity_id: str, preset: str) -> Any:
        return await self._climate("set_preset_mode", entity_id, preset_mode=preset)


__all__ = [
    "EntityState",
    "HAAuthenticationError",
    "HAClient",
    "HAClientError",
    "HAConnectionError",
    "HANotFoundError",
    "HAServiceError",
]
