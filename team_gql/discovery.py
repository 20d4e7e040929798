"""Discover TEAM service settings from its web front-end.

The TEAM single-page app embeds its Amplify configuration in the main script
bundle; the GraphQL endpoint and OAuth client settings are scraped from it.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Final

import aiohttp
from yarl import URL

from .errors import DiscoveryError

_LOGGER = logging.getLogger(__name__)

DISCOVERY_TIMEOUT: Final = 300.0

_SCRIPT_RE = re.compile(r'src="([\w./:_-]+\.js)"', re.ASCII)
_SCOPE_RE = re.compile(r'"([\w:/._-]+)"', re.ASCII)

# The oauth block may sit up to ~4000 characters before the wanted key.
_CONFIG_EXTRACTORS: Final[dict[str, re.Pattern[str]]] = {
    "aws_appsync_graphqlEndpoint": re.compile(
        r'\Waws_appsync_graphqlEndpoint\W*:\W*"([\w:/._-]+)"', re.ASCII
    ),
    "aws_user_pools_web_client_id": re.compile(
        r'\Waws_user_pools_web_client_id\W*:\W*"([\w:/._-]+)"', re.ASCII
    ),
    "oauth_domain": re.compile(
        r'\Woauth\W*:.{0,3996}\Wdomain\W*:\W*"([\w:/._-]+)"', re.ASCII
    ),
    "oauth_responseType": re.compile(
        r'\Woauth\W*:.{0,3996}\WresponseType\W*:\W*"([\w:/._-]+)"', re.ASCII
    ),
    "oauth_scope": re.compile(
        r'\Woauth\W*:.{0,3996}\Wscope\W*:\W*\[(\W*(?:"[\w:/._-]+"\W*,?\W*)+)]',
        re.ASCII,
    ),
}


@dataclass(frozen=True)
class RemoteConfig:
    """Service settings published by a TEAM deployment."""

    graphql_endpoint: str
    user_pool_client_id: str = ""
    oauth_domain: str = ""
    oauth_response_type: str = ""
    oauth_scopes: tuple[str, ...] = ()


def _server_url(server: str) -> URL:
    if "://" not in server:
        server = f"http://{server}"
    try:
        url = URL(server)
    except ValueError as err:
        raise DiscoveryError(f"Could not parse server URL {server!r}") from err
    if not url.host:
        raise DiscoveryError(f"Server URL {server!r} has no host")
    return url


def find_main_script(html: str) -> str:
    """Return the single script path referenced by the homepage."""
    paths = _SCRIPT_RE.findall(html)
    for path in paths:
        _LOGGER.debug("Found script reference %s", path)
    if len(paths) != 1:
        raise DiscoveryError(f"Could not find main JS file ({len(paths)} candidates)")
    return paths[0]


def parse_bundle(script: str) -> RemoteConfig:
    """Extract the remote configuration from the main script bundle."""
    raw: dict[str, str] = {}
    for name, pattern in _CONFIG_EXTRACTORS.items():
        matches = pattern.findall(script)
        _LOGGER.debug("Found %d matches for %s", len(matches), name)
        if len(matches) != 1:
            raise DiscoveryError(
                f"Could not extract {name!r} (count={len(matches)})"
            )
        raw[name] = matches[0]

    scopes = tuple(_SCOPE_RE.findall(raw["oauth_scope"]))
    if not scopes:
        raise DiscoveryError(f"Invalid scope list {raw['oauth_scope']!r}")

    return RemoteConfig(
        graphql_endpoint=raw["aws_appsync_graphqlEndpoint"],
        user_pool_client_id=raw["aws_user_pools_web_client_id"],
        oauth_domain=raw["oauth_domain"],
        oauth_response_type=raw["oauth_responseType"],
        oauth_scopes=scopes,
    )


async def _fetch_text(session: aiohttp.ClientSession, url: URL, what: str) -> str:
    try:
        async with session.get(url) as resp:
            if resp.status != 200:
                raise DiscoveryError(f"Could not fetch {what}: HTTP {resp.status}")
            return await resp.text()
    except aiohttp.ClientError as err:
        raise DiscoveryError(f"Could not fetch {what}") from err


async def extract_remote_config(
    session: aiohttp.ClientSession,
    server: str,
    *,
    timeout: float = DISCOVERY_TIMEOUT,
) -> RemoteConfig:
    """Scrape the remote configuration from a TEAM deployment.

    Args:
        session: Shared aiohttp session.
        server: TEAM web address; ``http`` is assumed when no scheme is given.
        timeout: Budget for both fetches together.

    Raises:
        DiscoveryError: If a fetch fails or the bundle does not match.
    """
    base = _server_url(server)
    try:
        async with asyncio.timeout(timeout):
            _LOGGER.info("Fetching homepage %s", base)
            html = await _fetch_text(session, base, "homepage")
            script_path = find_main_script(html)

            if script_path.startswith(("http://", "https://")):
                script_url = URL(script_path)
            else:
                script_url = base / script_path.lstrip("/")

            _LOGGER.info("Fetching main JS file %s", script_url)
            script = await _fetch_text(session, script_url, "main JS file")
    except TimeoutError as err:
        raise DiscoveryError(f"Discovery timed out after {timeout}s") from err

    config = parse_bundle(script)
    _LOGGER.debug("Extracted remote configuration %s", config)
    return config
