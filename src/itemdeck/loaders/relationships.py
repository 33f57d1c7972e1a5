"""Foreign-key resolution between entity types.

A :class:`ResolverContext` is built once per load and holds an ``id -> entity``
map for every type.  Resolution attaches the related records under
``_resolved`` on a shallow copy of the entity; the raw field values are left
untouched so field paths can reach either form.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from itemdeck.expressions.field_path import is_number, parse_int_prefix
from itemdeck.models import RESOLVED_KEY, CollectionDefinition, Entity, RelationshipDefinition

# Fields never treated as implicit references.
_IMPLICIT_SKIP = frozenset({"id", "images", RESOLVED_KEY})

# Fallback rank fields when no ordinal relationship is declared.
_IMPLICIT_RANK_FIELDS = ("rank", "myRank")


@dataclass
class ResolverContext:
    definition: CollectionDefinition
    entities: dict[str, list[Entity]]
    entity_maps: dict[str, dict[str, Entity]] = field(default_factory=dict)


def create_resolver_context(
    definition: CollectionDefinition, entities: Mapping[str, list[Entity]]
) -> ResolverContext:
    """Index every loaded entity by id, per type."""
    entity_maps: dict[str, dict[str, Entity]] = {}
    for entity_type, records in entities.items():
        lookup: dict[str, Entity] = {}
        for record in records:
            entity_id = record.get("id")
            if isinstance(entity_id, str):
                lookup[entity_id] = record
        entity_maps[entity_type] = lookup
    return ResolverContext(definition=definition, entities=dict(entities), entity_maps=entity_maps)


def resolve_reference(entity_id: str, target_type: str, context: ResolverContext) -> Entity | None:
    lookup = context.entity_maps.get(target_type)
    if lookup is None:
        return None
    return lookup.get(entity_id)


def get_relationship_definition(
    entity_type: str, field_name: str, context: ResolverContext
) -> RelationshipDefinition | None:
    return (context.definition.relationships or {}).get(f"{entity_type}.{field_name}")


def resolve_entity_relationships(
    entity: Entity, entity_type: str, context: ResolverContext
) -> Entity:
    """Attach related entities under ``_resolved``.

    Declared relationships for *entity_type* are resolved first: a string id
    resolves to one entity, an array of ids to the found entities in order.
    Then any other field named after a loaded entity type and holding a
    string id is resolved implicitly, without overriding declared results.

    Returns *entity* itself when nothing resolved, otherwise a shallow copy
    carrying ``_resolved``.  Unresolvable ids are omitted.
    """
    resolved: dict[str, Entity | list[Entity]] = {}

    for field_name, definition in context.definition.relationships_for(entity_type):
        if definition.is_ordinal or field_name not in entity:
            continue
        value = entity[field_name]
        target_type = definition.target or field_name

        if isinstance(value, str):
            target = resolve_reference(value, target_type, context)
            if target is not None:
                resolved[field_name] = target
        elif isinstance(value, list):
            targets = [
                target
                for item in value
                if isinstance(item, str)
                and (target := resolve_reference(item, target_type, context)) is not None
            ]
            if targets:
                resolved[field_name] = targets

    for field_name, value in entity.items():
        if field_name in _IMPLICIT_SKIP or field_name in resolved:
            continue
        if field_name not in context.entity_maps or not isinstance(value, str):
            continue
        target = resolve_reference(value, field_name, context)
        if target is not None:
            resolved[field_name] = target

    if not resolved:
        return entity
    return {**entity, RESOLVED_KEY: resolved}


def resolve_all_relationships(entity_type: str, context: ResolverContext) -> list[Entity]:
    return [
        resolve_entity_relationships(entity, entity_type, context)
        for entity in context.entities.get(entity_type, [])
    ]


def _rank_value(value: object) -> int | float | None:
    if is_number(value):
        return value
    if isinstance(value, str):
        return parse_int_prefix(value)
    return None


def get_entity_rank(
    entity: Entity, entity_type: str, context: ResolverContext
) -> int | float | None:
    """Numeric rank of *entity*.

    Uses the first declared ordinal field present on the entity, otherwise
    ``rank`` / ``myRank``.  String ranks are parsed as integers (``"7"`` ->
    7); unparsable values give None.
    """
    for field_name, definition in context.definition.relationships_for(entity_type):
        if not definition.is_ordinal:
            continue
        value = entity.get(field_name)
        if is_number(value) or isinstance(value, str):
            return _rank_value(value)

    for field_name in _IMPLICIT_RANK_FIELDS:
        value = entity.get(field_name)
        if value is not None:
            return _rank_value(value)
    return None
