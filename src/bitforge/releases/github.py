"""Release discovery through the GitHub Releases API.

Only stable tags are kept (no pre-releases, nothing with ``rc`` in the
name), ordered newest first by ``(major, minor, patch)`` and truncated to
:data:`MAX_VERSIONS`.
"""

from __future__ import annotations

import asyncio
import threading
import weakref
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from bitforge.__version__ import __version__
from bitforge.core.constants import Target
from bitforge.core.exceptions import ReleaseFetchError

logger = structlog.get_logger(__name__)

RELEASE_URLS: dict[Target, str] = {
    Target.BITCOIN: "https://api.github.com/repos/bitcoin/bitcoin/releases?per_page=30",
    Target.ELECTRS: "https://api.github.com/repos/romanz/electrs/releases?per_page=30",
}
PROJECT_NAMES: dict[Target, str] = {
    Target.BITCOIN: "Bitcoin Core",
    Target.ELECTRS: "Electrs",
}
MAX_VERSIONS = 10
HTTP_TIMEOUT = 15.0

_clients: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, httpx.AsyncClient] = (
    weakref.WeakKeyDictionary()
)
_clients_lock = threading.Lock()


def get_http_client() -> httpx.AsyncClient:
    """Return the shared HTTP client for the running event loop.

    An ``AsyncClient`` pools connections on the loop it first ran on, so each
    loop gets its own client, created on first use.

    Raises:
        RuntimeError: If called outside a running event loop.
    """
    loop = asyncio.get_running_loop()
    with _clients_lock:
        client = _clients.get(loop)
        if client is None or client.is_closed:
            client = httpx.AsyncClient(
                timeout=HTTP_TIMEOUT,
                headers={"User-Agent": f"bitforge/{__version__}"},
            )
            _clients[loop] = client
    return client


async def aclose_http_client() -> None:
    """Close the running loop's shared client, if one was created."""
    with _clients_lock:
        client = _clients.pop(asyncio.get_running_loop(), None)
    if client is not None:
        await client.aclose()


class GitHubRelease(BaseModel):
    tag_name: str
    prerelease: bool = False


def parse_semver(tag: str) -> tuple[int, int, int]:
    """``"v27.1.2"`` → ``(27, 1, 2)``; missing or malformed parts count as 0."""
    parts = tag.lstrip("v").split(".", 3)
    numbers: list[int] = []
    for part in parts[:3]:
        try:
            numbers.append(int(part))
        except ValueError:
            numbers.append(0)
    while len(numbers) < 3:
        numbers.append(0)
    return (numbers[0], numbers[1], numbers[2])


def rank_releases(releases: list[GitHubRelease], limit: int = MAX_VERSIONS) -> list[str]:
    stable = [
        r.tag_name
        for r in releases
        if not r.prerelease and "rc" not in r.tag_name.lower()
    ]
    stable.sort(key=parse_semver, reverse=True)
    return stable[:limit]


class ReleaseIndex:
    """Fetch the newest stable release tags for each target.

    Args:
        client: HTTP client to use.  Defaults to the shared process client.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    def __repr__(self) -> str:
        return "ReleaseIndex()"

    async def fetch_versions(self, target: Target) -> list[str]:
        """Return up to ten stable tags for *target*, newest first.

        Raises:
            ReleaseFetchError: On transport errors, error statuses or bad JSON.
        """
        client = self._client or get_http_client()
        project = PROJECT_NAMES[target]
        try:
            resp = await client.get(RELEASE_URLS[target])
        except httpx.RequestError as exc:
            raise ReleaseFetchError(f"HTTP GET failed for {project} releases: {exc}") from exc

        if resp.status_code >= 400:
            raise ReleaseFetchError(
                f"GitHub API returned HTTP {resp.status_code} for {project}",
                code=str(resp.status_code),
            )

        try:
            payload: Any = resp.json()
            releases = [GitHubRelease.model_validate(item) for item in payload]
        except (ValueError, TypeError) as exc:
            raise ReleaseFetchError(f"Failed to parse {project} release JSON: {exc}") from exc

        versions = rank_releases(releases)
        logger.info("releases_fetched", target=str(target), count=len(versions))
        return versions

    async def fetch_bitcoin_versions(self) -> list[str]:
        return await self.fetch_versions(Target.BITCOIN)

    async def fetch_electrs_versions(self) -> list[str]:
        return await self.fetch_versions(Target.ELECTRS)
