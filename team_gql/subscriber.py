"""graphql-ws subscription state machine over a single realtime connection.

This module owns one connection for one subscription and drives it through:
- Dialing with the auth-carrying sub-protocol
- Connection handshake (connection_init -> connection_ack)
- Subscription start (start -> start_ack)
- Data dispatch to a caller handler, tolerating keep-alives

States only move forward. Unknown frame kinds and frames for other
subscription ids are logged and skipped in every state.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any
from uuid import uuid4

from .endpoint import RealtimeDialParams
from .errors import (
    ConnectFailed,
    HandshakeRejected,
    StreamError,
    SubscriberStateError,
    SubscriptionRejected,
)
from .protocol import (
    GQL_CONNECTION_ACK,
    GQL_CONNECTION_ERROR,
    GQL_DATA,
    GQL_ERROR,
    GQL_KEEP_ALIVE,
    GQL_START_ACK,
    ControlMessage,
    GqlRequest,
    Payload,
    build_connection_init,
    build_start,
    decode_message,
    encode_message,
)
from .ws_client import DEFAULT_READ_TIMEOUT, DEFAULT_WRITE_TIMEOUT, GqlWsClient

_LOGGER = logging.getLogger(__name__)

DataHandler = Callable[[Payload], bool | Awaitable[bool]]


class SubscriberState(Enum):
    """Lifecycle of one subscriber connection, in order."""

    DISCONNECTED = "disconnected"
    DIALING = "dialing"
    INITIALIZING = "initializing"
    READY = "ready"
    STARTING = "starting"
    ACTIVE = "active"
    CLOSED = "closed"


_STATE_ORDER = {state: index for index, state in enumerate(SubscriberState)}


class GqlSubscriber:
    """Single-subscription graphql-ws client.

    Usage:
        subscriber = GqlSubscriber(dial_params, GqlRequest(query=...))
        async with subscriber:
            await subscriber.open()
            await subscriber.initialize()
            await subscriber.start()
            payload = await subscriber.process(handler)
    """

    def __init__(
        self,
        dial: RealtimeDialParams,
        request: GqlRequest,
        *,
        subscription_id: str | None = None,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        connect_timeout: float = 15.0,
        ws_client: GqlWsClient | None = None,
    ) -> None:
        self.dial = dial
        self.request = request
        self.subscription_id = subscription_id or str(uuid4())

        self._read_timeout = read_timeout
        self._write_timeout = write_timeout
        self._connect_timeout = connect_timeout

        self._ws = ws_client or GqlWsClient()
        self._state = SubscriberState.DISCONNECTED
        self._state_callback: Callable[[SubscriberState], None] | None = None

    @property
    def state(self) -> SubscriberState:
        return self._state

    def on_state_changed(self, callback: Callable[[SubscriberState], None]) -> None:
        """Register callback for state transitions."""
        self._state_callback = callback

    async def __aenter__(self) -> GqlSubscriber:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Public API: lifecycle
    # -------------------------------------------------------------------------

    async def open(self) -> None:
        """Dial the realtime endpoint."""
        self._require_state(SubscriberState.DISCONNECTED)
        self._set_state(SubscriberState.DIALING)

        _LOGGER.info(
            "[%s] Connecting to %s", self.subscription_id, self.dial.address
        )
        try:
            await self._ws.connect(
                self.dial.address,
                subprotocols=self.dial.subprotocols,
                timeout=self._connect_timeout,
            )
        except ConnectFailed:
            self._set_state(SubscriberState.CLOSED)
            raise

        self._set_state(SubscriberState.INITIALIZING)

    async def initialize(self) -> None:
        """Run the connection_init / connection_ack handshake."""
        self._require_state(SubscriberState.INITIALIZING)

        await self._send(build_connection_init())

        while True:
            msg = await self._read()

            if msg.type == GQL_KEEP_ALIVE:
                continue
            if msg.type == GQL_CONNECTION_ACK:
                self._set_state(SubscriberState.READY)
                _LOGGER.debug("[%s] Connection initialized", self.subscription_id)
                return
            if msg.type == GQL_CONNECTION_ERROR:
                self._log_server_errors(msg)
                raise HandshakeRejected(
                    "Server rejected connection", errors=msg.errors
                )

            _LOGGER.warning(
                "[%s] Unexpected %r frame during handshake",
                self.subscription_id,
                msg.type,
            )

    async def start(self) -> None:
        """Send the start frame and wait for the matching start_ack."""
        self._require_state(SubscriberState.READY)
        self._set_state(SubscriberState.STARTING)

        await self._send(
            build_start(
                subscription_id=self.subscription_id,
                request=self.request,
                authorization=self.dial.authorization,
            )
        )

        while True:
            msg = await self._read()

            if msg.type == GQL_KEEP_ALIVE:
                continue
            if msg.type == GQL_ERROR:
                self._log_server_errors(msg)
                raise SubscriptionRejected(
                    "Server rejected subscription",
                    errors=msg.errors,
                    subscription_id=self.subscription_id,
                )
            if msg.type == GQL_START_ACK:
                if msg.id != self.subscription_id:
                    # Only one subscription is ever in flight; revisit if
                    # connections start carrying several.
                    _LOGGER.warning(
                        "[%s] Ignoring start_ack for %s",
                        self.subscription_id,
                        msg.id,
                    )
                    continue
                self._set_state(SubscriberState.ACTIVE)
                _LOGGER.debug("[%s] Subscription ready", self.subscription_id)
                return

            _LOGGER.warning(
                "[%s] Unexpected %r frame while starting",
                self.subscription_id,
                msg.type,
            )

    async def process(self, handler: DataHandler) -> Payload:
        """Dispatch data frames to ``handler`` until it returns False.

        Returns:
            The payload on which the handler asked to stop.
        """
        self._require_state(SubscriberState.ACTIVE)

        while True:
            msg = await self._read()

            if msg.type == GQL_KEEP_ALIVE:
                continue
            if msg.type == GQL_ERROR:
                self._log_server_errors(msg)
                raise StreamError(
                    "Server reported subscription error",
                    errors=msg.errors,
                    subscription_id=self.subscription_id,
                )
            if msg.type == GQL_DATA:
                if msg.id != self.subscription_id:
                    _LOGGER.warning(
                        "[%s] Ignoring data for %s", self.subscription_id, msg.id
                    )
                    continue

                payload = msg.payload or Payload()
                _LOGGER.debug(
                    "[%s] Data frame: %s", self.subscription_id, payload.data
                )

                result = handler(payload)
                if inspect.isawaitable(result):
                    result = await result
                if not result:
                    _LOGGER.debug(
                        "[%s] Data handler requested stop", self.subscription_id
                    )
                    return payload
                continue

            _LOGGER.warning(
                "[%s] Unexpected %r frame while active",
                self.subscription_id,
                msg.type,
            )

    async def close(self) -> None:
        """Close the connection; safe to call repeatedly and concurrently."""
        if self._state is SubscriberState.CLOSED:
            return
        self._set_state(SubscriberState.CLOSED)
        _LOGGER.info("[%s] Closing connection", self.subscription_id)
        await self._ws.close()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _set_state(self, state: SubscriberState) -> None:
        """Advance state and notify callback."""
        if state is self._state:
            return
        if (
            state is not SubscriberState.CLOSED
            and _STATE_ORDER[state] < _STATE_ORDER[self._state]
        ):
            raise SubscriberStateError(
                f"Cannot move from {self._state.value} back to {state.value}"
            )
        _LOGGER.debug(
            "[%s] State: %s → %s",
            self.subscription_id,
            self._state.value,
            state.value,
        )
        self._state = state
        if self._state_callback:
            self._state_callback(state)

    def _require_state(self, expected: SubscriberState) -> None:
        if self._state is not expected:
            raise SubscriberStateError(
                f"Expected state {expected.value}, subscriber is {self._state.value}"
            )

    async def _send(self, message: ControlMessage) -> None:
        await self._ws.send_json(encode_message(message), timeout=self._write_timeout)
        _LOGGER.debug("[%s] Sent %s", self.subscription_id, message.type)

    async def _read(self) -> ControlMessage:
        frame = await self._ws.receive_json(timeout=self._read_timeout)
        msg = decode_message(frame)
        if msg.type == GQL_KEEP_ALIVE:
            _LOGGER.debug("[%s] Keep-alive", self.subscription_id)
        return msg

    def _log_server_errors(self, msg: ControlMessage) -> None:
        for err in msg.errors:
            _LOGGER.warning(
                "[%s] Server error %s: %s",
                self.subscription_id,
                err.error_type,
                err.message,
            )
