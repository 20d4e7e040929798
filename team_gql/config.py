"""Settings file loading and saving.

Settings are plain YAML. The access token is stored as issued; acquiring or
refreshing it is outside this package.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .discovery import RemoteConfig
from .errors import ConfigLoadError


@dataclass(frozen=True)
class TimeoutSettings:
    """I/O budgets in seconds.

    Attributes:
        read: Inactivity window re-armed before every realtime read.
        write: Deadline for each realtime write.
        connect: Realtime dial deadline.
        request: HTTP GraphQL request deadline.
        rendezvous: Overall budget for one trigger-and-wait operation.
    """

    read: float = 60.0
    write: float = 10.0
    connect: float = 15.0
    request: float = 30.0
    rendezvous: float = 180.0


@dataclass(frozen=True)
class Identity:
    """Caller identity claims used by policy lookups."""

    user_id: str
    group_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class TeamSettings:
    """Complete client settings."""

    remote: RemoteConfig | None = None
    access_token: str | None = None
    identity: Identity | None = None
    timeouts: TimeoutSettings = field(default_factory=TimeoutSettings)

    @property
    def graphql_endpoint(self) -> str:
        if self.remote is None or not self.remote.graphql_endpoint:
            raise ConfigLoadError("No GraphQL endpoint configured")
        return self.remote.graphql_endpoint

    def require_token(self) -> str:
        if not self.access_token:
            raise ConfigLoadError("No access token configured")
        return self.access_token

    def with_token(self, access_token: str) -> TeamSettings:
        return replace(self, access_token=access_token)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file with error handling."""
    if not path.exists():
        raise ConfigLoadError(f"File not found: {path}")
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as err:
        raise ConfigLoadError(f"Invalid YAML in {path}") from err
    if not isinstance(data, dict):
        raise ConfigLoadError(f"Settings in {path} must be a mapping")
    return data


def _parse_timeouts(data: dict[str, Any]) -> TimeoutSettings:
    defaults = TimeoutSettings()
    values: dict[str, float] = {}
    for name in ("read", "write", "connect", "request", "rendezvous"):
        raw = data.get(name, getattr(defaults, name))
        try:
            value = float(raw)
        except (TypeError, ValueError) as err:
            raise ConfigLoadError(f"Timeout {name!r} must be a number") from err
        if value <= 0:
            raise ConfigLoadError(f"Timeout {name!r} must be positive")
        values[name] = value
    return TimeoutSettings(**values)


def load_settings(path: Path) -> TeamSettings:
    """Load settings from a YAML file.

    Raises:
        ConfigLoadError: If the file is missing or malformed.
    """
    data = _load_yaml(path)

    remote = None
    if remote_data := data.get("remote"):
        try:
            remote = RemoteConfig(
                graphql_endpoint=remote_data["graphql_endpoint"],
                user_pool_client_id=remote_data.get("user_pool_client_id", ""),
                oauth_domain=remote_data.get("oauth_domain", ""),
                oauth_response_type=remote_data.get("oauth_response_type", ""),
                oauth_scopes=tuple(remote_data.get("oauth_scopes", [])),
            )
        except (KeyError, TypeError) as err:
            raise ConfigLoadError(f"Invalid remote section in {path}") from err

    identity = None
    if identity_data := data.get("identity"):
        if "user_id" not in identity_data:
            raise ConfigLoadError(f"identity.user_id missing in {path}")
        identity = Identity(
            user_id=str(identity_data["user_id"]),
            group_ids=tuple(str(g) for g in identity_data.get("group_ids", [])),
        )

    return TeamSettings(
        remote=remote,
        access_token=data.get("access_token"),
        identity=identity,
        timeouts=_parse_timeouts(data.get("timeouts") or {}),
    )


def save_settings(path: Path, settings: TeamSettings) -> None:
    """Write settings to a YAML file, creating parent folders."""
    data: dict[str, Any] = {"timeouts": asdict(settings.timeouts)}
    if settings.remote is not None:
        remote = asdict(settings.remote)
        remote["oauth_scopes"] = list(settings.remote.oauth_scopes)
        data["remote"] = remote
    if settings.access_token:
        data["access_token"] = settings.access_token
    if settings.identity is not None:
        data["identity"] = {
            "user_id": settings.identity.user_id,
            "group_ids": list(settings.identity.group_ids),
        }

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        yaml.safe_dump(data, f, sort_keys=False)
