"""Collection loading: definition, entity sets, settings and resolution input.

A collection lives under a base location (a directory URL)::

    {base}/collection.json          definition (required)
    {base}/settings.json            optional settings
    {base}/games/index.json         ids, or games/_index.json
    {base}/games/{id}.json          one entity per id
    {base}/games.json | game.json   flat alternatives

Entity sets are located by trying each layout in turn until one yields at
least one entity id or record.  Per-id fetches run concurrently and failures
drop only the affected entity.
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Any

import httpx
from pydantic import ValidationError

from itemdeck.config import EngineConfig
from itemdeck.core.logging import load_context
from itemdeck.core.telemetry import load_span
from itemdeck.loaders.discovery import (
    RateLimitState,
    discover_entities_via_github,
    is_jsdelivr_url,
)
from itemdeck.loaders.documents import (
    DocumentFetcher,
    Found,
    IdList,
    join_url,
    parse_entity_document,
    parse_index_document,
)
from itemdeck.loaders.settings import load_collection_settings
from itemdeck.models import (
    V2_FIELD_TYPES,
    CollectionDefinition,
    Entity,
    LoadedCollection,
    SchemaVersion,
    detect_schema_version,
    format_validation_issues,
    get_primary_entity_type,
)

logger = logging.getLogger(__name__)

DEFINITION_FILE_NAME = "collection.json"
_INDEX_FILE_NAMES = ("index.json", "_index.json")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class CollectionLoadError(RuntimeError):
    """Base class for collection loading failures."""


class DefinitionError(CollectionLoadError):
    """The collection definition is missing, not JSON, or fails validation.

    ``issues`` lists one ``"<dotted.path>: <message>"`` entry per violated
    field when the failure is a schema violation.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str,
        status_code: int | None = None,
        issues: list[str] | None = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        self.issues = list(issues or [])
        if self.issues:
            message = message + ":\n" + "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(message)


class NoPrimaryTypeError(CollectionLoadError):
    """The collection definition declares no entity type."""


def validate_collection_definition(
    data: Any, url: str = DEFINITION_FILE_NAME
) -> CollectionDefinition:
    """Validate decoded definition JSON, raising DefinitionError with every issue."""
    try:
        return CollectionDefinition.model_validate(data)
    except ValidationError as exc:
        raise DefinitionError(
            "Invalid collection definition",
            url=url,
            issues=format_validation_issues(exc),
        ) from exc


def get_schema_version(definition: CollectionDefinition) -> SchemaVersion:
    return detect_schema_version(definition)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class CollectionLoader:
    """Loads collections over one HTTP client.

    Parameters
    ----------
    client:
        Optional ``httpx.AsyncClient``.  When omitted the loader creates one
        from the HTTP config and closes it in :meth:`aclose`.
    config:
        Engine configuration; defaults apply when omitted.
    rate_limit:
        Rate-limit state shared by directory discovery calls.  Each loader
        gets its own unless one is injected.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        config: EngineConfig | None = None,
        rate_limit: RateLimitState | None = None,
    ) -> None:
        self.config = config if config is not None else EngineConfig()
        self.rate_limit = rate_limit if rate_limit is not None else RateLimitState()
        self._owns_client = client is None
        self._client = (
            client
            if client is not None
            else httpx.AsyncClient(timeout=self.config.http.timeout(), follow_redirects=True)
        )
        self.fetcher = DocumentFetcher(self._client)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> CollectionLoader:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # -- definition --------------------------------------------------------

    async def load_collection_definition(self, base: str) -> CollectionDefinition:
        """Fetch and validate ``{base}/collection.json``.

        Raises
        ------
        DefinitionError
            If the document is missing, not JSON, or fails validation.
        """
        result = await self.fetcher.fetch_json(join_url(base, DEFINITION_FILE_NAME))
        if not isinstance(result, Found):
            raise DefinitionError(
                f"Failed to load collection definition from {result.url}: {result.reason}",
                url=result.url,
                status_code=result.status_code,
            )
        return validate_collection_definition(result.data, result.url)

    async def detect_collection_version(self, base: str) -> SchemaVersion | None:
        """Schema version of the collection at *base*; None if there is none."""
        result = await self.fetcher.fetch_json(join_url(base, DEFINITION_FILE_NAME))
        if not isinstance(result, Found):
            return None
        if not isinstance(result.data, dict) or "entityTypes" not in result.data:
            return None
        try:
            definition = CollectionDefinition.model_validate(result.data)
        except ValidationError:
            return _detect_raw_schema_version(result.data)
        return detect_schema_version(definition)

    async def is_v1_collection(self, base: str) -> bool:
        return await self.detect_collection_version(base) == SchemaVersion.V1

    async def is_v2_collection(self, base: str) -> bool:
        return await self.detect_collection_version(base) == SchemaVersion.V2

    # -- entities ----------------------------------------------------------

    async def load_entities(self, base: str, entity_type: str) -> list[Entity]:
        """Load every entity of *entity_type* under *base*.

        Layouts are tried in order: ``{type}s/index.json``,
        ``{type}s/_index.json``, directory discovery (mirror URLs only),
        ``{type}s.json`` and ``{type}.json``.  Returns ``[]`` when none of
        them yields anything.
        """
        with (
            load_context(entity_type=entity_type),
            load_span("itemdeck.load_entities", **{"entity.type": entity_type}) as span,
        ):
            entities = await self._load_entities(base, entity_type)
            span.set_attribute("entity.count", len(entities))
            return entities

    async def _load_entities(self, base: str, entity_type: str) -> list[Entity]:
        directory = join_url(base, f"{entity_type}s")

        for index_name in _INDEX_FILE_NAMES:
            ids = await self._fetch_index(join_url(directory, index_name), entity_type)
            if ids:
                logger.debug(
                    "Loading %d %s entities from %s", len(ids.ids), entity_type, index_name
                )
                return await self._load_entities_by_id(directory, ids.ids)

        if is_jsdelivr_url(base, host=self.config.discovery.mirror_host):
            discovered = await self._discover(directory)
            if discovered:
                logger.debug("Discovered %d %s entities", len(discovered), entity_type)
                return await self._load_entities_by_id(directory, discovered)

        for flat_name in (f"{entity_type}s.json", f"{entity_type}.json"):
            result = await self.fetcher.fetch_json(join_url(base, flat_name))
            if isinstance(result, Found):
                entities = parse_entity_document(result.data).entities
                if entities:
                    return entities
            else:
                logger.debug("No flat document %s: %s", result.url, result.reason)

        logger.debug("No entities found for type %r under %s", entity_type, base)
        return []

    async def _fetch_index(self, url: str, entity_type: str) -> IdList:
        result = await self.fetcher.fetch_json(url)
        if not isinstance(result, Found):
            logger.debug("No index document %s: %s", url, result.reason)
            return IdList()
        return parse_index_document(result.data, entity_type)

    async def _discover(self, directory: str) -> list[str] | None:
        discovery = self.config.discovery
        return await discover_entities_via_github(
            directory,
            client=self._client,
            rate_limit=self.rate_limit,
            user_agent=discovery.user_agent,
            api_base_url=discovery.api_base_url,
            mirror_host=discovery.mirror_host,
            token=discovery.github_token,
        )

    async def _load_entities_by_id(self, directory: str, ids: list[str]) -> list[Entity]:
        results = await asyncio.gather(
            *(self._load_entity(directory, entity_id) for entity_id in ids)
        )
        return [entity for entity in results if entity is not None]

    async def _load_entity(self, directory: str, entity_id: str) -> Entity | None:
        result = await self.fetcher.fetch_json(join_url(directory, f"{entity_id}.json"))
        if not isinstance(result, Found):
            logger.warning("Failed to load entity %s: %s", result.url, result.reason)
            return None
        if not isinstance(result.data, dict):
            logger.warning("Failed to load entity %s: document is not an object", result.url)
            return None
        return result.data

    # -- whole collection --------------------------------------------------

    async def load_collection(self, base: str) -> LoadedCollection:
        """Load the definition, every entity type and the optional settings.

        Entity types and settings are fetched concurrently.

        Raises
        ------
        DefinitionError
            If the definition cannot be loaded or validated.
        NoPrimaryTypeError
            If the definition declares no entity type.
        """
        with (
            load_context(collection=base),
            load_span("itemdeck.load_collection", **{"collection.base": base}) as span,
        ):
            definition = await self.load_collection_definition(base)

            primary_type = get_primary_entity_type(definition)
            if primary_type is None:
                raise NoPrimaryTypeError(
                    f"Collection {definition.id!r} has no entity types defined"
                )

            entity_types = list(definition.entity_types)
            *entity_sets, settings = await asyncio.gather(
                *(self.load_entities(base, entity_type) for entity_type in entity_types),
                load_collection_settings(base, self.fetcher),
            )

            loaded = LoadedCollection(
                definition=definition,
                entities=dict(zip(entity_types, entity_sets, strict=True)),
                primary_type=primary_type,
                settings=settings,
                schema_version=detect_schema_version(definition),
            )
            span.set_attribute("entity.count", sum(loaded.counts.values()))
            logger.info(
                "Loaded collection %r (%s): %s",
                definition.id,
                loaded.schema_version,
                ", ".join(f"{name}={count}" for name, count in loaded.counts.items()),
            )
            return loaded


def _detect_raw_schema_version(data: dict[str, Any]) -> SchemaVersion:
    """Version detection on a definition that does not fully validate."""
    explicit = data.get("schemaVersion")
    if explicit in (SchemaVersion.V1, SchemaVersion.V2):
        return SchemaVersion(explicit)
    entity_types = data.get("entityTypes")
    if isinstance(entity_types, dict):
        for type_def in entity_types.values():
            fields = type_def.get("fields") if isinstance(type_def, dict) else None
            if not isinstance(fields, dict):
                continue
            for field_def in fields.values():
                if isinstance(field_def, dict) and field_def.get("type") in V2_FIELD_TYPES:
                    return SchemaVersion.V2
    return SchemaVersion.V1


# ---------------------------------------------------------------------------
# Module-level conveniences
# ---------------------------------------------------------------------------

# Each call without a loader opens its own client.  Pass one RateLimitState to
# successive calls so a quota exhaustion seen by one is honoured by the next.


async def load_collection_definition(
    base: str,
    *,
    loader: CollectionLoader | None = None,
    rate_limit: RateLimitState | None = None,
) -> CollectionDefinition:
    if loader is not None:
        return await loader.load_collection_definition(base)
    async with CollectionLoader(rate_limit=rate_limit) as owned:
        return await owned.load_collection_definition(base)


async def load_entities(
    base: str,
    entity_type: str,
    *,
    loader: CollectionLoader | None = None,
    rate_limit: RateLimitState | None = None,
) -> list[Entity]:
    if loader is not None:
        return await loader.load_entities(base, entity_type)
    async with CollectionLoader(rate_limit=rate_limit) as owned:
        return await owned.load_entities(base, entity_type)


async def load_collection(
    base: str,
    *,
    loader: CollectionLoader | None = None,
    rate_limit: RateLimitState | None = None,
) -> LoadedCollection:
    if loader is not None:
        return await loader.load_collection(base)
    async with CollectionLoader(rate_limit=rate_limit) as owned:
        return await owned.load_collection(base)


async def detect_collection_version(
    base: str,
    *,
    loader: CollectionLoader | None = None,
    rate_limit: RateLimitState | None = None,
) -> SchemaVersion | None:
    if loader is not None:
        return await loader.detect_collection_version(base)
    async with CollectionLoader(rate_limit=rate_limit) as owned:
        return await owned.detect_collection_version(base)


async def is_v1_collection(
    base: str,
    *,
    loader: CollectionLoader | None = None,
    rate_limit: RateLimitState | None = None,
) -> bool:
    return (
        await detect_collection_version(base, loader=loader, rate_limit=rate_limit)
        == SchemaVersion.V1
    )


async def is_v2_collection(
    base: str,
    *,
    loader: CollectionLoader | None = None,
    rate_limit: RateLimitState | None = None,
) -> bool:
    return (
        await detect_collection_version(base, loader=loader, rate_limit=rate_limit)
        == SchemaVersion.V2
    )
