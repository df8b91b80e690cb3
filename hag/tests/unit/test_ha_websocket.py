"""Tests for hag.integrations.ha_websocket - message parsing, callbacks, URL conversion."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from hag.integrations.ha_client import EntityState
from hag.integrations.ha_websocket import HAStateChange, HAWebSocketClient, websocket_url

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def client() -> HAWebSocketClient:
    return HAWebSocketClient("http://localhost:8123", "fake-token")


def _event(entity_id: str, new_state: Any, old_state: Any = None) -> dict[str, Any]:
    return {
        "id": 1,
        "type": "event",
        "event": {
            "event_type": "state_changed",
            "data": {
                "entity_id": entity_id,
                "new_state": new_state,
                "old_state": old_state,
            },
        },
    }


def _change(entity_id: str = "sensor.indoor_temperature", state: str = "20") -> HAStateChange:
    return HAStateChange(entity_id=entity_id, new_state=EntityState(entity_id, state))


# ===================================================================
# HAStateChange dataclass
# ===================================================================


class TestHAStateChange:
    def test_default_values(self) -> None:
        change = HAStateChange(entity_id="sensor.temp", new_state=None)
        assert change.entity_id == "sensor.temp"
        assert change.domain == "sensor"
        assert change.old_state is None
        assert change.value is None
        assert isinstance(change.timestamp, datetime)

    def test_numeric_value(self) -> None:
        assert _change(state="22.5").value == 22.5

    @pytest.mark.parametrize("state", ["unavailable", "unknown", "", "heat", "nan"])
    def test_non_numeric_value_is_none(self, state: str) -> None:
        assert _change(state=state).value is None


# ===================================================================
# URL conversion
# ===================================================================


class TestURLConversion:
    """Tests for HTTP → WS URL conversion in the constructor."""

    def test_http_to_ws(self) -> None:
        c = HAWebSocketClient("http://homeassistant.local:8123", "token")
        assert c._ws_url == "ws://homeassistant.local:8123/api/websocket"

    def test_https_to_wss(self) -> None:
        c = HAWebSocketClient("https://ha.example.com", "token")
        assert c._ws_url == "wss://ha.example.com/api/websocket"

    def test_bare_host(self) -> None:
        c = HAWebSocketClient("homeassistant.local:8123", "token")
        assert c._ws_url == "ws://homeassistant.local:8123/api/websocket"

    def test_trailing_slash_stripped(self) -> None:
        c = HAWebSocketClient("http://ha.local:8123/", "token")
        assert c._ws_url == "ws://ha.local:8123/api/websocket"

    def test_explicit_ws_url_kept(self) -> None:
        assert websocket_url("ws://ha.local:8123/api/websocket") == (
            "ws://ha.local:8123/api/websocket"
        )

    def test_ws_base_gets_path(self) -> None:
        assert websocket_url("wss://ha.local") == "wss://ha.local/api/websocket"


# ===================================================================
# Callbacks - add / remove
# ===================================================================


class TestCallbacks:
    def test_add_callback(self, client: HAWebSocketClient) -> None:
        cb = AsyncMock()
        client.add_callback(cb)
        assert cb in client._callbacks
        assert len(client._callbacks) == 1

    def test_add_callback_no_duplicates(self, client: HAWebSocketClient) -> None:
        cb = AsyncMock()
        client.add_callback(cb)
        client.add_callback(cb)
        assert len(client._callbacks) == 1

    def test_remove_callback(self, client: HAWebSocketClient) -> None:
        cb = AsyncMock()
        client.add_callback(cb)
        client.remove_callback(cb)
        assert cb not in client._callbacks

    def test_remove_nonexistent_callback_no_error(self, client: HAWebSocketClient) -> None:
        client.remove_callback(AsyncMock())


# ===================================================================
# connected property
# ===================================================================


class TestConnectedProperty:
    def test_initially_not_connected(self, client: HAWebSocketClient) -> None:
        assert client.connected is False

    def test_connected_after_event_set(self, client: HAWebSocketClient) -> None:
        client._connected.set()
        assert client.connected is True

    def test_disconnected_after_event_clear(self, client: HAWebSocketClient) -> None:
        client._connected.set()
        client._connected.clear()
        assert client.connected is False


# ===================================================================
# _parse_message
# ===================================================================


class TestParseMessage:
    def test_state_changed_event(self, client: HAWebSocketClient) -> None:
        change = client._parse_message(
            _event(
                "sensor.indoor_temperature",
                {
                    "entity_id": "sensor.indoor_temperature",
                    "state": "21.5",
                    "attributes": {"unit_of_measurement": "°C"},
                    "last_changed": "2026-01-01T00:00:00Z",
                },
                {"entity_id": "sensor.indoor_temperature", "state": "21.0"},
            )
        )
        assert change is not None
        assert change.entity_id == "sensor.indoor_temperature"
        assert change.value == 21.5
        assert change.new_state is not None
        assert change.new_state.unit == "°C"
        assert change.new_state.last_changed == "2026-01-01T00:00:00Z"
        assert change.old_state is not None
        assert change.old_state.numeric_state() == 21.0

    def test_removed_entity_has_no_new_state(self, client: HAWebSocketClient) -> None:
        change = client._parse_message(_event("sensor.indoor_temperature", None))
        assert change is not None
        assert change.new_state is None
        assert change.value is None

    def test_non_event_message_ignored(self, client: HAWebSocketClient) -> None:
        assert client._parse_message({"id": 1, "type": "result", "success": True}) is None

    def test_other_event_type_ignored(self, client: HAWebSocketClient) -> None:
        msg = {"type": "event", "event": {"event_type": "call_service", "data": {}}}
        assert client._parse_message(msg) is None

    def test_missing_entity_id_ignored(self, client: HAWebSocketClient) -> None:
        assert client._parse_message(_event("", {"state": "1"})) is None


# ===================================================================
# _dispatch
# ===================================================================


class TestDispatch:
    def test_calls_all_registered_callbacks(self, client: HAWebSocketClient) -> None:
        cb1 = MagicMock()
        cb2 = MagicMock()
        client.add_callback(cb1)
        client.add_callback(cb2)

        change = _change()
        client._dispatch(change)

        cb1.assert_called_once_with(change)
        cb2.assert_called_once_with(change)

    def test_exception_in_callback_does_not_stop_others(self, client: HAWebSocketClient) -> None:
        cb1 = MagicMock(side_effect=RuntimeError("boom"))
        cb2 = MagicMock()
        client.add_callback(cb1)
        client.add_callback(cb2)

        change = _change()
        client._dispatch(change)

        cb1.assert_called_once_with(change)
        cb2.assert_called_once_with(change)

    async def test_async_callback_scheduled(self, client: HAWebSocketClient) -> None:
        cb = AsyncMock()
        client.add_callback(cb)

        change = _change()
        client._dispatch(change)
        assert len(client._background) == 1

        await next(iter(client._background))
        cb.assert_awaited_once_with(change)


# ===================================================================
# Entity filter
# ===================================================================


class TestEntityFilter:
    def test_filter_set_on_init(self) -> None:
        entities = {"sensor.temp", "sensor.humidity"}
        c = HAWebSocketClient("http://ha:8123", "token", entity_filter=entities)
        assert c._entity_filter == entities

    def test_no_filter_by_default(self) -> None:
        c = HAWebSocketClient("http://ha:8123", "token")
        assert c._entity_filter is None

    def test_filtered_entity_dropped(self) -> None:
        c = HAWebSocketClient("http://ha:8123", "token", entity_filter={"sensor.indoor"})
        assert c._parse_message(_event("sensor.other", {"state": "1"})) is None
        assert c._parse_message(_event("sensor.indoor", {"state": "1"})) is not None

    def test_add_entity_to_filter(self) -> None:
        c = HAWebSocketClient("http://ha:8123", "token", entity_filter=set())
        c.add_entity_to_filter("sensor.indoor")
        assert c._parse_message(_event("sensor.indoor", {"state": "1"})) is not None

    def test_add_entity_without_filter_is_noop(self, client: HAWebSocketClient) -> None:
        client.add_entity_to_filter("sensor.indoor")
        assert client._entity_filter is None
