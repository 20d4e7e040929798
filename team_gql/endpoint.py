"""Realtime endpoint and sub-protocol derivation.

AppSync-managed APIs expose realtime traffic on a sibling host
(``*.appsync-api.*`` -> ``*.appsync-realtime-api.*``); custom domains proxy
it through the same host under ``/realtime``.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from yarl import URL

from .errors import InvalidEndpoint
from .protocol import GRAPHQL_WS_PROTOCOL

REALTIME_PATH_SUFFIX: Final = "/realtime"
SUBPROTOCOL_PREFIX: Final = "header-"

_GATEWAY_API_MARKER: Final = ".appsync-api."
_GATEWAY_REALTIME_MARKER: Final = ".appsync-realtime-api."
_GATEWAY_DOMAIN_MARKER: Final = ".amazonaws."


@dataclass(frozen=True)
class RealtimeDialParams:
    """Everything needed to dial one realtime connection.

    The auth extension and the sub-protocol string are derived from the same
    credential snapshot and travel together.
    """

    address: str
    subprotocols: tuple[str, ...]
    authorization: Mapping[str, str]


def _parse_endpoint(endpoint: str) -> URL:
    try:
        url = URL(endpoint)
    except (TypeError, ValueError) as err:
        raise InvalidEndpoint(f"Unable to parse endpoint {endpoint!r}") from err
    if not url.is_absolute() or not url.host:
        raise InvalidEndpoint(f"Endpoint {endpoint!r} is not an absolute URL")
    return url


def _is_managed_gateway(host: str) -> bool:
    return _GATEWAY_API_MARKER in host and _GATEWAY_DOMAIN_MARKER in host


def resolve_realtime_address(endpoint: str) -> str:
    """Derive the realtime WebSocket address from the HTTP GraphQL endpoint."""
    url = _parse_endpoint(endpoint)
    host = url.raw_host or ""

    if _is_managed_gateway(host):
        url = url.with_host(host.replace(_GATEWAY_API_MARKER, _GATEWAY_REALTIME_MARKER, 1))
    else:
        path = "" if url.raw_path == "/" else url.raw_path
        query = url.raw_query_string
        url = url.with_path(path + REALTIME_PATH_SUFFIX, encoded=True)
        if query:
            url = url.with_query(query)

    scheme = "wss" if url.scheme == "https" else "ws"
    return str(url.with_scheme(scheme))


def build_auth_extension(endpoint: str, credential: str) -> dict[str, str]:
    """Build the auth extension map for ``credential``."""
    url = _parse_endpoint(endpoint)
    return {"host": url.host or "", "Authorization": credential}


def encode_auth_subprotocol(authorization: Mapping[str, str]) -> str:
    """Encode the auth extension as a Sec-WebSocket-Protocol token."""
    canonical = json.dumps(dict(authorization), separators=(",", ":"), sort_keys=True)
    encoded = base64.urlsafe_b64encode(canonical.encode()).decode("ascii")
    return SUBPROTOCOL_PREFIX + encoded.rstrip("=")


def decode_auth_subprotocol(value: str) -> dict[str, str]:
    """Recover the auth extension map from an encoded sub-protocol token."""
    if not value.startswith(SUBPROTOCOL_PREFIX):
        raise ValueError(f"Sub-protocol must start with {SUBPROTOCOL_PREFIX!r}")
    encoded = value[len(SUBPROTOCOL_PREFIX) :]
    encoded += "=" * (-len(encoded) % 4)
    try:
        result = json.loads(base64.urlsafe_b64decode(encoded))
    except (binascii.Error, json.JSONDecodeError) as err:
        raise ValueError("Sub-protocol does not carry an auth extension") from err
    if not isinstance(result, dict):
        raise ValueError("Sub-protocol auth extension is not an object")
    return result


def resolve_dial_params(endpoint: str, credential: str) -> RealtimeDialParams:
    """Resolve the realtime address and auth material for one connection."""
    authorization = build_auth_extension(endpoint, credential)
    return RealtimeDialParams(
        address=resolve_realtime_address(endpoint),
        subprotocols=(GRAPHQL_WS_PROTOCOL, encode_auth_subprotocol(authorization)),
        authorization=authorization,
    )
