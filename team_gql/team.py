"""TEAM (temporary elevated access) operations over the GraphQL API.

Usage:
    async with aiohttp.ClientSession() as session:
        client = TeamClient(session, load_settings(path))
        accounts = await client.list_accounts()
        request_id = await client.request_access(AccessRequest(...))
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Final

import aiohttp

from .config import Identity, TeamSettings
from .errors import ConfigLoadError, InvalidPolicy, ProtocolError
from .http import GqlHttpClient
from .protocol import GqlRequest, Payload
from .rendezvous import RendezvousCoordinator

_LOGGER = logging.getLogger(__name__)

TICKET_PATTERN: Final = re.compile(r"^[a-zA-Z0-9_-]+$")

POLICY_SUBSCRIPTION: Final = """subscription OnPublishPolicy {
    onPublishPolicy {
      id
      policy {
        accounts {
          name
          id
          __typename
        }
        permissions {
          name
          id
          __typename
        }
        approvalRequired
        duration
        __typename
      }
      username
      __typename
    }
  }"""

POLICY_QUERY: Final = """query GetUserPolicy($userId: String, $groupIds: [String]) {
  getUserPolicy(userId: $userId, groupIds: $groupIds) {
    id
    policy {
      accounts {
        name
        id
        __typename
      }
      permissions {
        name
        id
        __typename
      }
      approvalRequired
      duration
      __typename
    }
    username
    __typename
  }
}"""

CREATE_REQUEST_MUTATION: Final = """mutation CreateRequests(
    $input: CreateRequestsInput!
    $condition: ModelRequestsConditionInput
  ) {
    createRequests(input: $input, condition: $condition) {
      id
      email
      accountId
      accountName
      role
      roleId
      startTime
      duration
      justification
      status
      comment
      username
      approver
      approverId
      approvers
      approver_ids
      revoker
      revokerId
      endTime
      ticketNo
      revokeComment
      session_duration
      createdAt
      updatedAt
      owner
      __typename
    }
  }"""


def is_valid_ticket(value: str) -> bool:
    """Check a ticket number against the characters TEAM accepts."""
    return TICKET_PATTERN.fullmatch(value) is not None


@dataclass
class Role:
    """Permission set grantable on an account.

    Attributes:
        id: Permission set identifier.
        name: Permission set name.
        max_duration_approval: Longest duration (hours) with approval.
        max_duration_no_approval: Longest duration (hours) without approval,
            0 when every grant needs approval.
    """

    id: str
    name: str
    max_duration_approval: int = 0
    max_duration_no_approval: int = 0


@dataclass
class Account:
    """AWS account with the roles the caller may request."""

    id: str
    name: str
    roles: dict[str, Role] = field(default_factory=dict)


@dataclass(frozen=True)
class AccessRequest:
    """Elevated access request."""

    account_id: str
    account_name: str
    role: str
    role_id: str
    duration: int
    justification: str
    ticket: str
    start_time: datetime | None = None


def format_start_time(start_time: datetime | None) -> str:
    """Render a start time as UTC RFC 3339, truncated to the minute."""
    if start_time is None:
        start_time = datetime.now(tz=UTC)
    start_time = start_time.astimezone(UTC).replace(second=0, microsecond=0)
    return start_time.strftime("%Y-%m-%dT%H:%M:%SZ")


def build_accounts(data: Any) -> dict[str, Account]:
    """Fold a published policy document into accounts and roles.

    Raises:
        InvalidPolicy: If the document shape or a duration is invalid.
    """
    if not isinstance(data, dict):
        raise InvalidPolicy("Policy payload is not an object")
    published = data.get("onPublishPolicy") or {}
    if not isinstance(published, dict):
        raise InvalidPolicy("onPublishPolicy is not an object")
    policies = published.get("policy") or []
    if not isinstance(policies, list):
        raise InvalidPolicy("Policy list is not an array")

    accounts: dict[str, Account] = {}

    try:
        for policy in policies:
            _fold_policy(accounts, policy)
    except (KeyError, TypeError, AttributeError) as err:
        raise InvalidPolicy(f"Malformed policy entry: {err}") from err

    return accounts


def _fold_policy(accounts: dict[str, Account], policy: dict[str, Any]) -> None:
    raw_duration = policy.get("duration")
    approval_required = bool(policy.get("approvalRequired"))
    _LOGGER.debug(
        "Policy duration=%s approval_required=%s", raw_duration, approval_required
    )

    try:
        duration = int(raw_duration)
    except (TypeError, ValueError) as err:
        raise InvalidPolicy(
            f"Failed to parse policy duration {raw_duration!r}"
        ) from err

    for raw_account in policy.get("accounts") or []:
        account = accounts.get(raw_account["id"])
        if account is None:
            account = Account(id=raw_account["id"], name=raw_account["name"])
            accounts[account.id] = account

        for perm in policy.get("permissions") or []:
            role = account.roles.get(perm["id"])
            if role is None:
                role = Role(id=perm["id"], name=perm["name"])
                account.roles[role.id] = role

            role.max_duration_approval = max(duration, role.max_duration_approval)
            if not approval_required:
                role.max_duration_no_approval = max(
                    duration, role.max_duration_no_approval
                )


async def fetch_accounts(
    client: GqlHttpClient,
    identity: Identity,
    *,
    coordinator: RendezvousCoordinator | None = None,
) -> dict[str, Account]:
    """Fetch the accounts and roles the caller may request.

    The policy is only published to live subscriptions, so this subscribes
    first and then asks the server to publish it.
    """
    _LOGGER.info("Fetching AWS accounts")
    coordinator = coordinator or RendezvousCoordinator()

    trigger = client.trigger(
        GqlRequest(
            query=POLICY_QUERY,
            variables={
                "userId": identity.user_id,
                "groupIds": list(identity.group_ids),
            },
        )
    )

    def keep_first(_payload: Payload) -> bool:
        return False

    payload = await coordinator.run(
        client.endpoint,
        client.access_token,
        GqlRequest(query=POLICY_SUBSCRIPTION),
        trigger,
        keep_first,
    )
    return build_accounts(payload.data)


async def request_access(client: GqlHttpClient, request: AccessRequest) -> str:
    """Create an access request and return its id.

    Raises:
        GraphQLResponseError: If the server rejected the request.
    """
    _LOGGER.info("Requesting access to %s as %s", request.account_name, request.role)

    payload = await client.execute_checked(
        GqlRequest(
            query=CREATE_REQUEST_MUTATION,
            variables={
                "input": {
                    "accountId": request.account_id,
                    "accountName": request.account_name,
                    "role": request.role,
                    "roleId": request.role_id,
                    "duration": str(request.duration),
                    "startTime": format_start_time(request.start_time),
                    "justification": request.justification,
                    "ticketNo": request.ticket,
                }
            },
        )
    )

    try:
        return str(payload.data["createRequests"]["id"])
    except (KeyError, TypeError) as err:
        raise ProtocolError("createRequests response has no id") from err


class TeamClient:
    """High-level TEAM client built from settings."""

    def __init__(self, session: aiohttp.ClientSession, settings: TeamSettings) -> None:
        self.settings = settings
        timeouts = settings.timeouts
        self._http = GqlHttpClient(
            session,
            settings.graphql_endpoint,
            settings.require_token(),
            timeout=timeouts.request,
        )
        self._coordinator = RendezvousCoordinator(
            deadline=timeouts.rendezvous,
            read_timeout=timeouts.read,
            write_timeout=timeouts.write,
            connect_timeout=timeouts.connect,
        )

    async def list_accounts(self) -> dict[str, Account]:
        if self.settings.identity is None:
            raise ConfigLoadError("No identity configured for policy lookup")
        return await fetch_accounts(
            self._http, self.settings.identity, coordinator=self._coordinator
        )

    async def request_access(self, request: AccessRequest) -> str:
        return await request_access(self._http, request)
