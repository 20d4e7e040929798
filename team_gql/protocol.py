"""Protocol helpers for graphql-ws (AppSync realtime) control frames.

Frames are single JSON text messages shaped as::

    {"type": <kind>, "id": <subscription id>, "payload": {...}}

with ``id`` and ``payload`` omitted when absent. Unknown optional fields and
unknown kinds MUST be tolerated by the reader.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Final

from .errors import ProtocolError

GRAPHQL_WS_PROTOCOL: Final = "graphql-ws"

GQL_CONNECTION_INIT: Final = "connection_init"  # Client -> Server
GQL_CONNECTION_ACK: Final = "connection_ack"  # Server -> Client
GQL_CONNECTION_ERROR: Final = "connection_error"  # Server -> Client
GQL_START: Final = "start"  # Client -> Server
GQL_START_ACK: Final = "start_ack"  # Server -> Client
GQL_DATA: Final = "data"  # Server -> Client
GQL_KEEP_ALIVE: Final = "ka"  # Server -> Client
GQL_ERROR: Final = "error"  # Server -> Client


@dataclass(frozen=True)
class GqlRequest:
    """Opaque GraphQL document plus its variables."""

    query: str
    variables: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"query": self.query}
        if self.variables:
            body["variables"] = dict(self.variables)
        return body


@dataclass(frozen=True)
class ServerError:
    """Single error entry reported by the server."""

    error_type: str
    message: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> ServerError:
        if not isinstance(raw, dict):
            return cls(error_type=str(raw))
        message = raw.get("message")
        return cls(
            error_type=str(raw.get("errorType") or "Unknown"),
            message=str(message) if message is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"errorType": self.error_type}
        if self.message is not None:
            body["message"] = self.message
        return body


@dataclass(frozen=True)
class Payload:
    """Payload of a control frame or an HTTP GraphQL response.

    Attributes:
        data: Decoded ``data`` value, left uninterpreted.
        authorization: Auth extension map, only set on outgoing start frames.
        errors: Server-reported errors in the order received.
    """

    data: Any = None
    authorization: Mapping[str, str] | None = None
    errors: tuple[ServerError, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, raw: Any) -> Payload:
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ProtocolError(f"Payload must be an object, got {type(raw).__name__}")

        authorization = None
        extensions = raw.get("extensions")
        if isinstance(extensions, dict) and isinstance(
            extensions.get("authorization"), dict
        ):
            authorization = dict(extensions["authorization"])

        errors = raw.get("errors") or []
        if not isinstance(errors, list):
            errors = [errors]

        return cls(
            data=raw.get("data"),
            authorization=authorization,
            errors=tuple(ServerError.from_dict(err) for err in errors),
        )

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if self.data is not None:
            body["data"] = self.data
        if self.authorization:
            body["extensions"] = {"authorization": dict(self.authorization)}
        if self.errors:
            body["errors"] = [err.to_dict() for err in self.errors]
        return body


@dataclass(frozen=True)
class ControlMessage:
    """Wire-level graphql-ws frame."""

    type: str
    id: str | None = None
    payload: Payload | None = None

    @property
    def errors(self) -> tuple[ServerError, ...]:
        return self.payload.errors if self.payload is not None else ()


def encode_message(message: ControlMessage) -> dict[str, Any]:
    """Build the JSON object for a control frame, omitting empty fields."""
    frame: dict[str, Any] = {"type": message.type}
    if message.id:
        frame["id"] = message.id
    if message.payload is not None:
        frame["payload"] = message.payload.to_dict()
    return frame


def decode_message(frame: Mapping[str, Any]) -> ControlMessage:
    """Parse a decoded JSON frame into a ControlMessage.

    Raises:
        ProtocolError: If the frame has no string ``type``.
    """
    msg_type = frame.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise ProtocolError(f"Frame has no message type: {frame!r}")

    msg_id = frame.get("id")
    raw_payload = frame.get("payload")
    return ControlMessage(
        type=msg_type,
        id=str(msg_id) if msg_id is not None else None,
        payload=Payload.from_dict(raw_payload) if raw_payload is not None else None,
    )


def encode_request(request: GqlRequest) -> str:
    """Serialize a request as compact JSON text."""
    return json.dumps(request.to_dict(), separators=(",", ":"))


def build_connection_init() -> ControlMessage:
    """Construct the connection_init frame (no payload)."""
    return ControlMessage(type=GQL_CONNECTION_INIT)


def build_start(
    *,
    subscription_id: str,
    request: GqlRequest,
    authorization: Mapping[str, str],
) -> ControlMessage:
    """Construct a start frame for ``request``.

    ``payload.data`` is the serialized request carried as a JSON string, so
    the document is encoded twice on the wire.
    """
    if not subscription_id:
        raise ValueError("subscription_id is required for start frames")
    return ControlMessage(
        type=GQL_START,
        id=subscription_id,
        payload=Payload(
            data=encode_request(request),
            authorization=dict(authorization),
        ),
    )
