"""WebSocket dial helper for the realtime GraphQL endpoint."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)
from websockets.typing import Subprotocol

from .errors import ConnectFailed, InvalidEndpoint


async def connect_websocket(
    address: str,
    *,
    subprotocols: Sequence[str],
    ping_interval: float | None = 20,
    timeout: float = 15.0,
) -> ClientConnection:
    """Connect to a realtime WebSocket endpoint.

    All offered sub-protocols go out in a single Sec-WebSocket-Protocol
    header; the server selects the messaging protocol and only inspects the
    others.

    Args:
        address: ws:// or wss:// address
        subprotocols: Sub-protocol names to offer
        ping_interval: Interval for ping frames, None to disable
        timeout: Connection timeout covering TCP, TLS and upgrade
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                address,
                subprotocols=[Subprotocol(name) for name in subprotocols],
                ping_interval=ping_interval,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise ConnectFailed(f"WebSocket connection to {address} timed out") from err
    except InvalidURI as err:
        raise InvalidEndpoint(f"Invalid realtime address {address!r}") from err
    except InvalidHandshake as err:
        raise ConnectFailed(f"WebSocket upgrade rejected by {address}") from err
    except (OSError, WebSocketException) as err:
        raise ConnectFailed(f"WebSocket connection to {address} failed") from err
