"""Collection, entity, settings and relationship loading."""

from itemdeck.loaders.collection import (
    CollectionLoader,
    CollectionLoadError,
    DefinitionError,
    NoPrimaryTypeError,
    detect_collection_version,
    get_schema_version,
    is_v1_collection,
    is_v2_collection,
    load_collection,
    load_collection_definition,
    load_entities,
)
from itemdeck.loaders.discovery import (
    MirrorLocation,
    RateLimitState,
    build_mirror_url,
    discover_entities_via_github,
    is_jsdelivr_url,
    parse_jsdelivr_url,
)
from itemdeck.loaders.relationships import (
    ResolverContext,
    create_resolver_context,
    get_entity_rank,
    resolve_all_relationships,
    resolve_entity_relationships,
)
from itemdeck.loaders.settings import COLLECTION_SETTINGS_VERSION, load_collection_settings

__all__ = [
    "COLLECTION_SETTINGS_VERSION",
    "CollectionLoadError",
    "CollectionLoader",
    "DefinitionError",
    "MirrorLocation",
    "NoPrimaryTypeError",
    "RateLimitState",
    "ResolverContext",
    "build_mirror_url",
    "create_resolver_context",
    "detect_collection_version",
    "discover_entities_via_github",
    "get_entity_rank",
    "get_schema_version",
    "is_jsdelivr_url",
    "is_v1_collection",
    "is_v2_collection",
    "load_collection",
    "load_collection_definition",
    "load_collection_settings",
    "load_entities",
    "parse_jsdelivr_url",
    "resolve_all_relationships",
    "resolve_entity_relationships",
]
