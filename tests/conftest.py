"""Pytest configuration and fixtures for team_gql tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import ConnectionClosed

from team_gql.endpoint import RealtimeDialParams, resolve_dial_params

# Stands in for the subscription id the client generates.
SUB = "<subscription>"

ENDPOINT = "https://x.appsync-api.us-east-1.amazonaws.com/graphql"
TOKEN = "access-token"

_CLOSED = object()


class FakeConnection:
    """Scripted stand-in for a websockets ClientConnection.

    Frames are replayed in order; ``SUB`` ids are replaced with the id of
    the last start frame the client sent. ``events`` records sends and
    receives in order so tests can assert on sequencing.
    """

    def __init__(self, frames: list[Any] | None = None) -> None:
        self.subprotocol = "graphql-ws"
        self.sent: list[dict[str, Any]] = []
        self.events: list[str] = []
        self.close_calls = 0
        self.started_id: str | None = None
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        for frame in frames or []:
            self.push(frame)

    def push(self, frame: Any) -> None:
        self._inbox.put_nowait(frame)

    async def send(self, data: str) -> None:
        frame = json.loads(data)
        if frame["type"] == "start":
            self.started_id = frame["id"]
        self.sent.append(frame)
        self.events.append(f"sent:{frame['type']}")

    async def recv(self) -> str | bytes:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise ConnectionClosed(None, None)
        if isinstance(item, (str, bytes)):
            self.events.append("recv:raw")
            return item
        if item.get("id") == SUB:
            item = {**item, "id": self.started_id}
        self.events.append(f"recv:{item['type']}")
        return json.dumps(item)

    async def close(self) -> None:
        self.close_calls += 1
        self.events.append("close")
        self._inbox.put_nowait(_CLOSED)


def connection_ack() -> dict[str, Any]:
    return {"type": "connection_ack", "payload": {"connectionTimeoutMs": 300000}}


def keep_alive() -> dict[str, Any]:
    return {"type": "ka"}


def start_ack(sub_id: str = SUB) -> dict[str, Any]:
    return {"type": "start_ack", "id": sub_id}


def data_frame(data: Any, sub_id: str = SUB) -> dict[str, Any]:
    return {"type": "data", "id": sub_id, "payload": {"data": data}}


def error_frame(*error_types: str, sub_id: str | None = SUB) -> dict[str, Any]:
    frame: dict[str, Any] = {
        "type": "error",
        "payload": {"errors": [{"errorType": t, "message": t} for t in error_types]},
    }
    if sub_id is not None:
        frame["id"] = sub_id
    return frame


@pytest.fixture
def dial_params() -> RealtimeDialParams:
    return resolve_dial_params(ENDPOINT, TOKEN)


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def patched_connect(fake_connection: FakeConnection) -> Iterator[MagicMock]:
    """Route every realtime dial to ``fake_connection``."""
    with patch(
        "team_gql.ws_client.connect_websocket", return_value=fake_connection
    ) as mock_connect:
        yield mock_connect


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


def create_mock_response(
    status: int = 200,
    json_data: Any = None,
    text_data: str | None = None,
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        json_data: Serialized into the text() result when given
        text_data: Data to return from text() call

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status

    if json_data is not None:
        text_data = json.dumps(json_data)
    if text_data is not None:
        response.text.return_value = text_data

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response
