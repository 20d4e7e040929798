"""GraphQL client for AWS TEAM: HTTP queries and realtime subscriptions."""

__version__ = "0.1.0"

from .config import Identity, TeamSettings, TimeoutSettings, load_settings, save_settings
from .discovery import RemoteConfig, extract_remote_config
from .endpoint import (
    RealtimeDialParams,
    decode_auth_subprotocol,
    encode_auth_subprotocol,
    resolve_dial_params,
    resolve_realtime_address,
)
from .errors import (
    Cancelled,
    ConfigLoadError,
    ConnectFailed,
    ConnectionLost,
    DeadlineExceeded,
    DiscoveryError,
    GraphQLResponseError,
    HandshakeRejected,
    InvalidEndpoint,
    InvalidPolicy,
    ProtocolError,
    ReadTimeout,
    RequestFailed,
    RequestTimeout,
    ResponseError,
    ServerRejectedError,
    StreamError,
    SubscriberStateError,
    SubscriptionRejected,
    TeamClientError,
    TriggerFailed,
    WriteTimeout,
)
from .http import GqlHttpClient
from .protocol import ControlMessage, GqlRequest, Payload, ServerError
from .rendezvous import RendezvousCoordinator, run_rendezvous
from .subscriber import GqlSubscriber, SubscriberState
from .team import (
    AccessRequest,
    Account,
    Role,
    TeamClient,
    fetch_accounts,
    is_valid_ticket,
    request_access,
)
from .ws_client import GqlWsClient

__all__ = [
    "AccessRequest",
    "Account",
    "Cancelled",
    "ConfigLoadError",
    "ConnectFailed",
    "ConnectionLost",
    "ControlMessage",
    "DeadlineExceeded",
    "DiscoveryError",
    "GqlHttpClient",
    "GqlRequest",
    "GqlSubscriber",
    "GqlWsClient",
    "GraphQLResponseError",
    "HandshakeRejected",
    "Identity",
    "InvalidEndpoint",
    "InvalidPolicy",
    "Payload",
    "ProtocolError",
    "ReadTimeout",
    "RealtimeDialParams",
    "RemoteConfig",
    "RendezvousCoordinator",
    "RequestFailed",
    "RequestTimeout",
    "ResponseError",
    "Role",
    "ServerError",
    "ServerRejectedError",
    "StreamError",
    "SubscriberState",
    "SubscriberStateError",
    "SubscriptionRejected",
    "TeamClient",
    "TeamClientError",
    "TeamSettings",
    "TimeoutSettings",
    "TriggerFailed",
    "WriteTimeout",
    "__version__",
    "decode_auth_subprotocol",
    "encode_auth_subprotocol",
    "extract_remote_config",
    "fetch_accounts",
    "is_valid_ticket",
    "request_access",
    "resolve_dial_params",
    "resolve_realtime_address",
    "run_rendezvous",
]
