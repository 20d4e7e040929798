"""Client error types for TEAM GraphQL interactions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .protocol import ServerError


class TeamClientError(Exception):
    """Base error for TEAM GraphQL client failures."""


class InvalidEndpoint(TeamClientError):
    """Service address could not be parsed as an absolute URL."""


class ConnectFailed(TeamClientError):
    """Realtime connection could not be established."""


class ConnectionLost(TeamClientError):
    """Realtime connection closed while reading or writing."""


class ProtocolError(TeamClientError):
    """A frame or response body could not be decoded."""


class ReadTimeout(TeamClientError):
    """No frame arrived within the read deadline."""


class WriteTimeout(TeamClientError):
    """A frame could not be written within the write deadline."""


class SubscriberStateError(TeamClientError):
    """Subscriber operation invoked in the wrong state."""


class ServerRejectedError(TeamClientError):
    """The server answered with an error frame.

    Carries every error entry the server reported so callers can tell a
    rejected credential from a failed computation.
    """

    def __init__(
        self,
        message: str,
        *,
        errors: tuple[ServerError, ...] = (),
        subscription_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.errors = errors
        self.subscription_id = subscription_id

    @property
    def error_types(self) -> tuple[str, ...]:
        return tuple(err.error_type for err in self.errors)

    def __str__(self) -> str:
        text = super().__str__()
        if self.errors:
            text = f"{text}: {', '.join(self.error_types)}"
        if self.subscription_id:
            text = f"{text} (subscription {self.subscription_id})"
        return text


class HandshakeRejected(ServerRejectedError):
    """Server sent connection_error during the connection handshake."""


class SubscriptionRejected(ServerRejectedError):
    """Server sent an error while starting the subscription."""


class StreamError(ServerRejectedError):
    """Server pushed an error while the subscription was active."""


class TriggerFailed(TeamClientError):
    """The side-channel trigger call failed."""


class Cancelled(TeamClientError):
    """Rendezvous aborted by the caller."""


class DeadlineExceeded(Cancelled):
    """Rendezvous aborted because the overall deadline elapsed."""


class RequestTimeout(TeamClientError):
    """HTTP GraphQL request timed out."""


class RequestFailed(TeamClientError):
    """HTTP GraphQL request failed at the network level."""


class ResponseError(TeamClientError):
    """HTTP response error from the GraphQL endpoint."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


class GraphQLResponseError(ServerRejectedError):
    """HTTP GraphQL response carried server-reported errors."""


class ConfigLoadError(TeamClientError):
    """Settings file missing or invalid."""


class DiscoveryError(TeamClientError):
    """Remote configuration could not be extracted from the web front-end."""


class InvalidPolicy(TeamClientError):
    """Published policy could not be interpreted."""
