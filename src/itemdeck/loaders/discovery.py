"""Entity discovery by listing a mirrored repository directory.

Collections are often served through a CDN mirror of a git repository::

    https://cdn.jsdelivr.net/gh/{owner}/{repo}@{branch}/{path}

When an entity directory has no index document, the repository-hosting API
can list the directory instead.  That API is quota-limited, so discovery is
guarded by a :class:`RateLimitState`: once a response reports an exhausted
quota, further discovery calls return ``None`` without touching the network
until the reset time passes.

Discovery is best-effort.  Every failure is logged and reported as ``None``.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx

from itemdeck.config import DEFAULT_API_BASE_URL, DEFAULT_MIRROR_HOST, DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

ENTITY_FILE_SUFFIX = ".json"
INDEX_FILE_NAME = "index.json"
GITHUB_ACCEPT = "application/vnd.github.v3+json"

_RATE_LIMIT_STATUSES = (403, 429)


def _mirror_pattern(host: str) -> re.Pattern[str]:
    return re.compile(rf"^https?://{re.escape(host)}/gh/([^/]+)/([^@]+)@([^/]+)/(.+)$")


# ---------------------------------------------------------------------------
# Rate-limit state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RateLimitInfo:
    remaining: int
    reset: int  # Unix timestamp (seconds)


class RateLimitState:
    """Two-state breaker for the hosting API.

    Open (limited) while ``reset_at`` lies in the future; an expired
    timestamp is cleared on the next check.  One instance is shared by every
    discovery call of a loader; tests create their own.
    """

    def __init__(self, reset_at: float | None = None) -> None:
        self.reset_at = reset_at

    def is_limited(self, now: float | None = None) -> bool:
        if self.reset_at is None:
            return False
        current = time.time() if now is None else now
        if current < self.reset_at:
            return True
        self.reset_at = None
        return False

    def limit_until(self, reset: float) -> None:
        self.reset_at = reset

    def clear(self) -> None:
        self.reset_at = None

    def __repr__(self) -> str:
        return f"RateLimitState(reset_at={self.reset_at!r})"


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    match = re.match(r"^\s*([+-]?\d+)", raw)
    return int(match.group(1)) if match else None


def parse_rate_limit_headers(headers: Mapping[str, str]) -> RateLimitInfo | None:
    """Read ``X-RateLimit-Remaining`` / ``X-RateLimit-Reset``; None unless both parse."""
    remaining = _parse_int(headers.get("X-RateLimit-Remaining"))
    reset = _parse_int(headers.get("X-RateLimit-Reset"))
    if remaining is None or reset is None:
        return None
    return RateLimitInfo(remaining=remaining, reset=reset)


# ---------------------------------------------------------------------------
# Mirror URLs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MirrorLocation:
    owner: str
    repo: str
    branch: str
    path: str


def parse_jsdelivr_url(url: str, host: str = DEFAULT_MIRROR_HOST) -> MirrorLocation | None:
    """Split a mirror URL into owner, repo, branch and path.

    >>> parse_jsdelivr_url("https://cdn.jsdelivr.net/gh/REPPL/MyPlausibleMe@main/data/games")
    MirrorLocation(owner='REPPL', repo='MyPlausibleMe', branch='main', path='data/games')
    """
    match = _mirror_pattern(host).match(url)
    if match is None:
        return None
    owner, repo, branch, path = match.groups()
    if not (owner and repo and branch and path):
        return None
    return MirrorLocation(owner=owner, repo=repo, branch=branch, path=path)


def build_mirror_url(location: MirrorLocation, host: str = DEFAULT_MIRROR_HOST) -> str:
    """Inverse of :func:`parse_jsdelivr_url`."""
    return (
        f"https://{host}/gh/{location.owner}/{location.repo}@{location.branch}/{location.path}"
    )


def is_jsdelivr_url(url: str, host: str = DEFAULT_MIRROR_HOST) -> bool:
    return re.match(rf"^https?://{re.escape(host)}/gh/", url) is not None


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def _entity_ids_from_listing(contents: list[object]) -> list[str]:
    names: list[str] = []
    for item in contents:
        if not isinstance(item, Mapping) or item.get("type") != "file":
            continue
        name = item.get("name")
        if not isinstance(name, str):
            continue
        if not name.endswith(ENTITY_FILE_SUFFIX) or name.startswith("_") or name == INDEX_FILE_NAME:
            continue
        names.append(name.removesuffix(ENTITY_FILE_SUFFIX))
    return sorted(names)


async def discover_entities_via_github(
    mirror_url: str,
    *,
    client: httpx.AsyncClient,
    rate_limit: RateLimitState,
    user_agent: str = DEFAULT_USER_AGENT,
    api_base_url: str = DEFAULT_API_BASE_URL,
    mirror_host: str = DEFAULT_MIRROR_HOST,
    token: str | None = None,
) -> list[str] | None:
    """List entity ids in the directory a mirror URL points at.

    Parameters
    ----------
    mirror_url:
        Mirror URL of the entity directory (e.g. ``.../games``).
    client:
        HTTP client used for the hosting-API call.
    rate_limit:
        Shared rate-limit state; checked before and updated after the call.
    token:
        Optional bearer token for the hosting API.

    Returns
    -------
    list[str] | None
        Sorted entity ids, or None when limited, not a mirror URL, the call
        failed, or no entity files were listed.
    """
    if rate_limit.is_limited():
        logger.warning(
            "Discovery: skipping %s, rate limited until %s", mirror_url, _iso(rate_limit.reset_at)
        )
        return None

    location = parse_jsdelivr_url(mirror_url, host=mirror_host)
    if location is None:
        logger.debug("Discovery: %s is not a mirror URL", mirror_url)
        return None

    api_url = (
        f"{api_base_url.rstrip('/')}/repos/{location.owner}/{location.repo}"
        f"/contents/{location.path}"
    )
    headers = {"Accept": GITHUB_ACCEPT, "User-Agent": user_agent}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    try:
        response = await client.get(api_url, params={"ref": location.branch}, headers=headers)
    except httpx.HTTPError as exc:
        logger.warning("Discovery: listing request failed for %s: %s", mirror_url, exc)
        return None

    if response.status_code < 200 or response.status_code >= 300:
        if response.status_code in _RATE_LIMIT_STATUSES:
            info = parse_rate_limit_headers(response.headers)
            if info is not None and info.remaining == 0:
                rate_limit.limit_until(info.reset)
                logger.warning("Discovery: rate limited until %s", _iso(info.reset))
            else:
                logger.warning(
                    "Discovery: access forbidden (%s) for %s", response.status_code, mirror_url
                )
        else:
            logger.debug("Discovery: listing returned %s for %s", response.status_code, mirror_url)
        return None

    try:
        contents = response.json()
    except ValueError as exc:
        logger.warning("Discovery: invalid listing JSON for %s: %s", mirror_url, exc)
        return None

    # A single object means the path is a file, not a directory.
    if not isinstance(contents, list):
        return None

    entity_ids = _entity_ids_from_listing(contents)
    return entity_ids or None


def _iso(timestamp: float | None) -> str:
    if timestamp is None:
        return "unknown"
    return datetime.fromtimestamp(timestamp, UTC).isoformat()
