"""JSON document retrieval and the normalising parse steps for collection files.

Every document the loader reads goes through :meth:`DocumentFetcher.fetch_json`,
which never raises for ordinary failures: a missing document, a non-JSON
content type, a transport error and an undecodable body all come back as
:class:`Missing`.  Index and flat entity documents then pass through exactly
one normalising parse step each, producing :class:`IdList` /
:class:`EntityList` regardless of which of the accepted layouts was used.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from itemdeck.models import Entity

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"

# Keys an index object may list its ids under, after "{type}s" and "{type}".
_INDEX_COMMON_KEYS = ("items", "entities", "ids")


def is_json_content_type(content_type: str | None) -> bool:
    """True for ``application/json`` (with parameters) and ``+json`` suffixes."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return JSON_CONTENT_TYPE in content_type.lower() or media_type.endswith("+json")


# ---------------------------------------------------------------------------
# Fetch results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Found:
    url: str
    data: Any


@dataclass(frozen=True)
class Missing:
    url: str
    reason: str
    status_code: int | None = None


FetchResult = Found | Missing


class DocumentFetcher:
    """Fetches JSON documents over a shared ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch_json(self, url: str) -> FetchResult:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            return Missing(url, f"request failed: {exc}")

        if response.status_code < 200 or response.status_code >= 300:
            return Missing(url, f"HTTP {response.status_code}", response.status_code)

        content_type = response.headers.get("content-type")
        if not is_json_content_type(content_type):
            return Missing(
                url,
                f"unexpected content type: {content_type or 'unknown'}",
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            return Missing(url, f"invalid JSON: {exc}", response.status_code)

        return Found(url, data)


# ---------------------------------------------------------------------------
# Normalising parse steps
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IdList:
    """Entity ids listed by an index document, in document order.

    ``source`` names where the ids came from: ``"array"``, the matching key,
    or ``None`` when the document had no recognised layout.
    """

    ids: list[str] = field(default_factory=list)
    source: str | None = None

    def __bool__(self) -> bool:
        return bool(self.ids)


@dataclass(frozen=True)
class EntityList:
    """Entity records from a flat document (array or single object)."""

    entities: list[Entity] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.entities)


def _string_ids(values: list[Any]) -> list[str]:
    return [value for value in values if isinstance(value, str)]


def parse_index_document(data: Any, entity_type: str) -> IdList:
    """Normalise an index document.

    Accepts a bare array of ids or an object listing them under
    ``{type}s``, ``{type}``, ``items``, ``entities`` or ``ids`` (first
    array-valued key wins).  Non-string entries are dropped.
    """
    if isinstance(data, list):
        return IdList(_string_ids(data), "array")

    if isinstance(data, Mapping):
        for key in (f"{entity_type}s", entity_type, *_INDEX_COMMON_KEYS):
            value = data.get(key)
            if isinstance(value, list):
                return IdList(_string_ids(value), key)

    return IdList()


def parse_entity_document(data: Any) -> EntityList:
    """Normalise a flat entity document: array of records or a single record."""
    if isinstance(data, list):
        return EntityList([dict(item) for item in data if isinstance(item, Mapping)])
    if isinstance(data, Mapping):
        return EntityList([dict(data)])
    return EntityList()


def join_url(base: str, *parts: str) -> str:
    """Join *parts* onto *base* with single slashes."""
    segments = [base.rstrip("/")]
    segments.extend(part.strip("/") for part in parts)
    return "/".join(segments)
