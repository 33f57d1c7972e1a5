"""Document models for collection definitions, images, ratings and settings.

The JSON documents use camelCase keys; the models expose snake_case
attributes and accept either spelling on input.  Entities themselves are not
modelled: they are heterogeneous records kept as plain ``dict`` objects.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

# An entity record: field name -> JSON value, always carrying ``id``.
Entity = dict[str, Any]

RESOLVED_KEY = "_resolved"


class SchemaVersion(enum.StrEnum):
    """Collection definition schema versions."""

    V1 = "v1"
    V2 = "v2"


# Field types only present in v2 collections.
V2_FIELD_TYPES = frozenset({"rating", "detailUrls"})


class _DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Images and ratings
# ---------------------------------------------------------------------------


class Attribution(_DocumentModel):
    source: str | None = None
    source_url: str | None = None
    author: str | None = None
    licence: str | None = None
    licence_url: str | None = None


class Image(_DocumentModel):
    """A structured image reference.

    ``type`` is a free-form tag such as ``"cover"`` or ``"logo"``;
    ``is_primary`` marks the preferred image in v2 collections.
    """

    url: str
    type: str | None = None
    is_primary: bool | None = None
    alt: str | None = None
    width: float | None = Field(default=None, gt=0)
    height: float | None = Field(default=None, gt=0)
    attribution: Attribution | None = None


class RatingValue(_DocumentModel):
    """Structured rating; unknown keys are preserved."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    score: float
    max: float | None = Field(default=None, ge=0)
    source_count: int | None = Field(default=None, ge=0)
    source: str | None = None
    source_url: str | None = None


# ---------------------------------------------------------------------------
# Collection definition
# ---------------------------------------------------------------------------

FieldType = Literal[
    "string",
    "text",
    "number",
    "boolean",
    "date",
    "url",
    "enum",
    "array",
    "object",
    "images",
    "videos",
    "rating",
    "detailUrls",
]


class FieldDefinition(_DocumentModel):
    type: FieldType
    required: bool | None = None
    description: str | None = None
    default: Any = None
    enum: list[str] | None = None
    ref: str | None = None
    label: str | None = None
    format: str | None = None
    items: FieldDefinition | None = None


class EntityTypeDefinition(_DocumentModel):
    """One category of entities in a collection."""

    primary: bool | None = None
    label: str | None = None
    label_plural: str | None = None
    description: str | None = None
    fields: dict[str, FieldDefinition]
    computed: dict[str, str] | None = None


class RelationshipDefinition(_DocumentModel):
    """A declared relationship keyed ``"<entityType>.<fieldName>"``.

    ``type="ordinal"`` marks a rank field that needs no resolution; anything
    else is a reference resolved against ``target`` (defaulting to the field
    name).
    """

    target: str | None = None
    cardinality: Literal["one-to-one", "one-to-many", "many-to-one", "many-to-many"] | None = None
    required: bool | None = None
    type: Literal["ordinal", "reference"] | None = None
    scope: str | None = None

    @property
    def is_ordinal(self) -> bool:
        return self.type == "ordinal"


SortSpec = str | tuple[str, Literal["asc", "desc"]]


class CardImageConfig(_DocumentModel):
    source: str | None = None
    show_attribution: bool | None = None


class CardFrontConfig(_DocumentModel):
    title: str | None = None
    subtitle: str | None = None
    badge: str | None = None
    footer: str | list[str] | None = None
    image: CardImageConfig | None = None


class CardBackConfig(_DocumentModel):
    logo: str | None = None
    text: str | None = None


class CardDisplayConfig(_DocumentModel):
    front: CardFrontConfig | None = None
    back: CardBackConfig | None = None
    verdict_fields: list[str] | None = None


class DisplayConfig(_DocumentModel):
    """Field paths and selector expressions the display layer evaluates."""

    primary_entity: str | None = None
    group_by: str | None = None
    sort_by: SortSpec | None = None
    sort_within_group: SortSpec | None = None
    card: CardDisplayConfig | None = None
    theme: str | None = None


class UILabels(_DocumentModel):
    more_button: str | None = None
    platform_label: str | None = None
    acknowledgement_button: str | None = None
    image_source_label: str | None = None
    source_button_default: str | None = None
    rank_placeholder: str | None = None
    wikipedia_label: str | None = None
    close_label: str | None = None


class CollectionDefaults(_DocumentModel):
    theme: Literal["retro", "modern", "minimal"] | None = None
    card_size: Literal["small", "medium", "large"] | None = None
    card_aspect_ratio: Literal["3:4", "5:7", "1:1"] | None = None


class CollectionCardsConfig(_DocumentModel):
    max_visible_cards: int | None = Field(default=None, gt=0)
    shuffle_on_load: bool | None = None
    card_back_display: Literal["year", "logo", "both", "none"] | None = None


class CollectionFieldMapping(_DocumentModel):
    title_field: str | None = None
    subtitle_field: str | None = None
    footer_badge_field: str | None = None
    logo_field: str | None = None
    sort_field: str | None = None
    sort_direction: Literal["asc", "desc"] | None = None


class CollectionConfig(_DocumentModel):
    defaults: CollectionDefaults | None = None
    cards: CollectionCardsConfig | None = None
    field_mapping: CollectionFieldMapping | None = None


class CollectionMetadata(_DocumentModel):
    author: str | None = None
    licence: str | None = None
    homepage: str | None = None
    tags: list[str] | None = None


class CollectionDefinition(_DocumentModel):
    """Root ``collection.json`` document.

    Only ``id``, ``name`` and ``entityTypes`` are required.  Unknown
    top-level keys are ignored.  Instances are treated as immutable once
    loaded.
    """

    schema_url: str | None = Field(default=None, alias="$schema")
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None
    schema_version: SchemaVersion | None = None
    version: str | None = None
    metadata: CollectionMetadata | None = None
    entity_types: dict[str, EntityTypeDefinition]
    relationships: dict[str, RelationshipDefinition] | None = None
    display: DisplayConfig | None = None
    ui_labels: UILabels | None = None
    config: CollectionConfig | None = None

    def relationships_for(self, entity_type: str) -> list[tuple[str, RelationshipDefinition]]:
        """Return ``(field_name, definition)`` pairs declared for *entity_type*.

        Keys are ``"<entityType>.<fieldName>"``; keys for other types, and
        keys without a field part, are skipped.
        """
        pairs: list[tuple[str, RelationshipDefinition]] = []
        for key, definition in (self.relationships or {}).items():
            rel_type, _, field_name = key.partition(".")
            if rel_type == entity_type and field_name:
                pairs.append((field_name, definition))
        return pairs


def detect_schema_version(definition: CollectionDefinition) -> SchemaVersion:
    """Infer the schema version from the definition's shape.

    An explicit ``schemaVersion`` wins; any ``rating`` or ``detailUrls``
    field makes it v2; otherwise v1.
    """
    if definition.schema_version is not None:
        return definition.schema_version

    for entity_type in definition.entity_types.values():
        for field_def in entity_type.fields.values():
            if field_def.type in V2_FIELD_TYPES:
                return SchemaVersion.V2

    return SchemaVersion.V1


def get_primary_entity_type(definition: CollectionDefinition) -> str | None:
    """Return the type flagged ``primary``, else the first declared type."""
    for type_name, type_def in definition.entity_types.items():
        if type_def.primary:
            return type_name
    return next(iter(definition.entity_types), None)


def format_validation_issues(exc: ValidationError) -> list[str]:
    """Render each validation error as ``"<dotted.path>: <message>"``."""
    issues: list[str] = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error["loc"])
        issues.append(f"{path}: {error['msg']}" if path else error["msg"])
    return issues


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class ForcedSettings(_DocumentModel):
    """Settings applied on every load; users cannot override them."""

    field_mapping: dict[str, Any] | None = None
    default_card_face: Literal["front", "back"] | None = None
    card_back_display: Literal["year", "logo", "both", "none"] | None = None
    card_back_style: Literal["plain", "pattern", "gradient"] | None = None
    title_display_mode: Literal["always", "hover", "never"] | None = None
    show_rank_badge: bool | None = None
    show_device_badge: bool | None = None
    rank_placeholder_text: str | None = None


class DefaultSettings(_DocumentModel):
    """Settings applied on first load only."""

    visual_theme: Literal["retro", "modern", "minimal"] | None = None
    card_size_preset: Literal["small", "medium", "large"] | None = None
    card_aspect_ratio: Literal["3:4", "5:7", "1:1"] | None = None
    max_visible_cards: int | None = None
    shuffle_on_load: bool | None = None
    search_fields: list[str] | None = None
    group_by_field: str | None = None


class CollectionSettings(_DocumentModel):
    version: int | float
    forced: ForcedSettings | None = None
    defaults: DefaultSettings | None = None


# ---------------------------------------------------------------------------
# Load result
# ---------------------------------------------------------------------------


@dataclass
class LoadedCollection:
    """Everything one ``load_collection`` call produced."""

    definition: CollectionDefinition
    entities: dict[str, list[Entity]]
    primary_type: str
    settings: CollectionSettings | None = None
    schema_version: SchemaVersion = SchemaVersion.V1
    counts: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.counts:
            self.counts = {name: len(items) for name, items in self.entities.items()}
