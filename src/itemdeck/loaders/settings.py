"""Optional ``settings.json`` next to a collection definition.

Settings are advisory: a missing, non-JSON or newer-version document yields
``None``, and individual values outside their allowed sets are dropped
without rejecting the rest of the document.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from typing import Any

from itemdeck.loaders.documents import DocumentFetcher, Found, join_url
from itemdeck.models import CollectionSettings, DefaultSettings, ForcedSettings

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "settings.json"
COLLECTION_SETTINGS_VERSION = 1

_FORCED_CHOICES: dict[str, frozenset[str]] = {
    "defaultCardFace": frozenset({"front", "back"}),
    "cardBackDisplay": frozenset({"year", "logo", "both", "none"}),
    "cardBackStyle": frozenset({"plain", "pattern", "gradient"}),
    "titleDisplayMode": frozenset({"always", "hover", "never"}),
}

_DEFAULT_CHOICES: dict[str, frozenset[str]] = {
    "visualTheme": frozenset({"retro", "modern", "minimal"}),
    "cardSizePreset": frozenset({"small", "medium", "large"}),
    "cardAspectRatio": frozenset({"3:4", "5:7", "1:1"}),
}


def _is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def _is_str(value: Any) -> bool:
    return isinstance(value, str)


def _pick(
    raw: Mapping[str, Any],
    keys: tuple[str, ...],
    check: Callable[[Any], bool],
    out: dict[str, Any],
) -> None:
    for key in keys:
        if key in raw and check(raw[key]):
            out[key] = raw[key]


def _pick_choices(
    raw: Mapping[str, Any], choices: dict[str, frozenset[str]], out: dict[str, Any]
) -> None:
    for key, allowed in choices.items():
        value = raw.get(key)
        if isinstance(value, str) and value in allowed:
            out[key] = value


def sanitise_forced_settings(raw: Mapping[str, Any]) -> ForcedSettings:
    """Keep only the well-formed forced settings."""
    values: dict[str, Any] = {}
    _pick_choices(raw, _FORCED_CHOICES, values)
    _pick(raw, ("showRankBadge", "showDeviceBadge"), _is_bool, values)
    _pick(raw, ("rankPlaceholderText",), _is_str, values)
    if isinstance(raw.get("fieldMapping"), Mapping):
        values["fieldMapping"] = dict(raw["fieldMapping"])
    return ForcedSettings.model_validate(values)


def sanitise_default_settings(raw: Mapping[str, Any]) -> DefaultSettings:
    """Keep only the well-formed first-load defaults."""
    values: dict[str, Any] = {}
    _pick_choices(raw, _DEFAULT_CHOICES, values)
    _pick(raw, ("shuffleOnLoad",), _is_bool, values)

    max_cards = raw.get("maxVisibleCards")
    if (
        isinstance(max_cards, int | float)
        and not isinstance(max_cards, bool)
        and math.isfinite(max_cards)
        and max_cards > 0
    ):
        values["maxVisibleCards"] = math.floor(max_cards)

    if "groupByField" in raw and (raw["groupByField"] is None or _is_str(raw["groupByField"])):
        values["groupByField"] = raw["groupByField"]

    search_fields = raw.get("searchFields")
    if isinstance(search_fields, list):
        values["searchFields"] = [item for item in search_fields if isinstance(item, str)]

    return DefaultSettings.model_validate(values)


def parse_collection_settings(data: Any) -> CollectionSettings | None:
    """Validate a decoded ``settings.json``; None when it cannot be used."""
    if not isinstance(data, Mapping):
        return None

    raw_version = data.get("version")
    version = (
        raw_version
        if isinstance(raw_version, int | float) and not isinstance(raw_version, bool)
        else COLLECTION_SETTINGS_VERSION
    )
    if version > COLLECTION_SETTINGS_VERSION:
        logger.warning(
            "Unsupported settings version: %s (expected <= %s)",
            version,
            COLLECTION_SETTINGS_VERSION,
        )
        return None

    forced = data.get("forced")
    defaults = data.get("defaults")
    return CollectionSettings(
        version=version,
        forced=sanitise_forced_settings(forced) if isinstance(forced, Mapping) else None,
        defaults=sanitise_default_settings(defaults) if isinstance(defaults, Mapping) else None,
    )


async def load_collection_settings(
    base: str, fetcher: DocumentFetcher
) -> CollectionSettings | None:
    """Fetch and validate ``{base}/settings.json``."""
    result = await fetcher.fetch_json(join_url(base, SETTINGS_FILE_NAME))
    if not isinstance(result, Found):
        if result.status_code is not None and 200 <= result.status_code < 300:
            logger.warning("Ignoring settings document %s: %s", result.url, result.reason)
        else:
            logger.debug("No settings document at %s: %s", result.url, result.reason)
        return None
    return parse_collection_settings(result.data)
