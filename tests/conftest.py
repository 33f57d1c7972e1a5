"""Shared fixtures: an in-memory collection host served through httpx.MockTransport."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from typing import Any

import httpx
import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from itemdeck.loaders.collection import CollectionLoader
from itemdeck.loaders.discovery import RateLimitState

BASE = "https://decks.example.test/collections/retro"
MIRROR_BASE = "https://cdn.jsdelivr.net/gh/acme/decks@main/collections/retro"
API_CONTENTS = "https://api.github.com/repos/acme/decks/contents/collections/retro"


class CollectionHost:
    """Serves JSON documents by URL and records every request.

    Unknown URLs get a 404 HTML page, like a static host would.
    """

    def __init__(self) -> None:
        self.responses: dict[str, httpx.Response] = {}
        self.requests: list[httpx.Request] = []

    def add_json(self, url: str, data: Any, status_code: int = 200) -> None:
        self.responses[url] = httpx.Response(status_code, json=data)

    def add_response(self, url: str, response: httpx.Response) -> None:
        self.responses[url] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = str(request.url).split("?", 1)[0]
        response = self.responses.get(key)
        if response is None:
            return httpx.Response(
                404, text="<html>Not Found</html>", headers={"content-type": "text/html"}
            )
        return response

    def requested(self, prefix: str = "") -> list[str]:
        return [str(r.url) for r in self.requests if str(r.url).startswith(prefix)]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def definition_doc(**overrides: Any) -> dict[str, Any]:
    """A small valid two-type collection definition."""
    doc: dict[str, Any] = {
        "id": "retro-games",
        "name": "Retro Games",
        "entityTypes": {
            "game": {
                "primary": True,
                "fields": {
                    "title": {"type": "string", "required": True},
                    "platform": {"type": "string", "ref": "platform"},
                    "rank": {"type": "number"},
                },
            },
            "platform": {"fields": {"title": {"type": "string"}}},
        },
        "relationships": {
            "game.platform": {"target": "platform", "cardinality": "many-to-one"},
            "game.rank": {"type": "ordinal"},
        },
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def host() -> CollectionHost:
    return CollectionHost()


@pytest.fixture
def rate_limit() -> RateLimitState:
    return RateLimitState()


@pytest.fixture
async def loader(
    host: CollectionHost, rate_limit: RateLimitState
) -> AsyncIterator[CollectionLoader]:
    client = host.client()
    try:
        yield CollectionLoader(client, rate_limit=rate_limit)
    finally:
        await client.aclose()


def _reset_otel_global_state() -> None:
    trace._TRACER_PROVIDER_SET_ONCE = trace.Once()
    trace._TRACER_PROVIDER = None


@pytest.fixture
def otel_exporter() -> Iterator[InMemorySpanExporter]:
    """Install an in-memory TracerProvider for the test, then tear it down."""
    _reset_otel_global_state()
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    yield exporter
    provider.shutdown()
    _reset_otel_global_state()
