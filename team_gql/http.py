"""HTTP client for one-shot GraphQL queries and mutations."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable

import aiohttp

from .errors import (
    GraphQLResponseError,
    ProtocolError,
    RequestFailed,
    RequestTimeout,
    ResponseError,
)
from .protocol import GqlRequest, Payload

_LOGGER = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0


class GqlHttpClient:
    """HTTP client wrapper for a GraphQL endpoint."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        endpoint: str,
        access_token: str,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._session = session
        self._endpoint = endpoint
        self._access_token = access_token
        self._timeout = timeout

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def access_token(self) -> str:
        return self._access_token

    def _headers(self) -> dict[str, str]:
        # The endpoint expects the raw token, no "Bearer" scheme.
        return {
            "Content-Type": "application/json",
            "Authorization": self._access_token,
        }

    async def execute(self, request: GqlRequest) -> Payload:
        """POST ``request`` and return the decoded response payload.

        Server-reported GraphQL errors are returned in ``Payload.errors``,
        not raised.

        Raises:
            ResponseError: Non-200 status.
            RequestTimeout: Request exceeded the timeout.
            RequestFailed: Network-level failure.
            ProtocolError: Body is not a JSON object.
        """
        try:
            async with self._session.post(
                self._endpoint,
                json=request.to_dict(),
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise ResponseError(
                        resp.status,
                        f"Unexpected status code {resp.status}: {body!r}",
                    )
        except TimeoutError as err:
            raise RequestTimeout("GraphQL request timed out") from err
        except aiohttp.ClientError as err:
            raise RequestFailed("GraphQL request failed") from err

        try:
            return Payload.from_dict(json.loads(body))
        except json.JSONDecodeError as err:
            raise ProtocolError("GraphQL response is not valid JSON") from err

    async def execute_checked(self, request: GqlRequest) -> Payload:
        """Execute ``request`` and raise if the server reported errors."""
        payload = await self.execute(request)
        if payload.errors:
            for err in payload.errors:
                _LOGGER.error(
                    "Received error from server: %s %s", err.error_type, err.message
                )
            raise GraphQLResponseError(
                "Server returned an error", errors=payload.errors
            )
        return payload

    def trigger(self, request: GqlRequest) -> Callable[[], Awaitable[Payload]]:
        """Wrap ``request`` as a rendezvous trigger action."""

        async def _trigger() -> Payload:
            return await self.execute_checked(request)

        return _trigger
