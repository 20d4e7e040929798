"""WebSocket client wrapper for the realtime GraphQL endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from typing import Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from .errors import ConnectionLost, ProtocolError, ReadTimeout, WriteTimeout
from .ws import connect_websocket

_LOGGER = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT = 60.0
DEFAULT_WRITE_TIMEOUT = 10.0
CLOSE_TIMEOUT = 2.0


class GqlWsClient:
    """Wrapper around websockets library for graphql-ws frames.

    One reader and one writer at a time; ``close`` may run concurrently with
    a pending read, which then fails with ConnectionLost.
    """

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None
        self._close_started = False

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._close_started

    @property
    def subprotocol(self) -> str | None:
        """Sub-protocol selected by the server."""
        if self._ws is None:
            return None
        return self._ws.subprotocol

    async def connect(
        self,
        address: str,
        *,
        subprotocols: Sequence[str],
        ping_interval: float | None = 20,
        timeout: float = 15.0,
    ) -> None:
        """Connect to the realtime websocket."""
        self._ws = await connect_websocket(
            address,
            subprotocols=subprotocols,
            ping_interval=ping_interval,
            timeout=timeout,
        )

    async def close(self) -> None:
        """Close the websocket connection; later calls are no-ops."""
        if self._ws is None or self._close_started:
            return
        self._close_started = True
        try:
            await asyncio.wait_for(self._ws.close(), timeout=CLOSE_TIMEOUT)
        except TimeoutError:
            _LOGGER.warning("WebSocket close timed out")

    async def send_json(
        self, payload: dict[str, Any], *, timeout: float = DEFAULT_WRITE_TIMEOUT
    ) -> None:
        """Send a JSON payload as one text frame."""
        ws = self._require_connection()
        try:
            async with asyncio.timeout(timeout):
                await ws.send(json.dumps(payload))
        except TimeoutError as err:
            raise WriteTimeout(f"Write not completed within {timeout}s") from err
        except ConnectionClosed as err:
            raise ConnectionLost("WebSocket closed while writing") from err

    async def receive_json(
        self, *, timeout: float = DEFAULT_READ_TIMEOUT
    ) -> dict[str, Any]:
        """Read the next text frame and decode it as a JSON object.

        Binary frames are skipped. The deadline covers the whole wait.
        """
        ws = self._require_connection()
        try:
            async with asyncio.timeout(timeout):
                while True:
                    raw = await ws.recv()
                    if isinstance(raw, bytes):
                        _LOGGER.debug("Skipping binary frame (%d bytes)", len(raw))
                        continue
                    return self.decode_json(raw)
        except TimeoutError as err:
            raise ReadTimeout(f"No frame received within {timeout}s") from err
        except ConnectionClosed as err:
            raise ConnectionLost("WebSocket closed while reading") from err

    def _require_connection(self) -> ClientConnection:
        if self._ws is None:
            raise ConnectionLost("WebSocket is not connected")
        if self._close_started:
            raise ConnectionLost("WebSocket is closed")
        return self._ws

    @staticmethod
    def decode_json(data: str) -> dict[str, Any]:
        """Decode a text frame into a JSON object."""
        try:
            result = json.loads(data)
        except json.JSONDecodeError as err:
            raise ProtocolError("Frame is not valid JSON") from err
        if not isinstance(result, dict):
            raise ProtocolError("Frame is not a JSON object")
        return result
