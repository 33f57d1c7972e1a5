"""Field-path language for pulling display values out of (resolved) entities.

A path is a sequence of steps::

    title                       property access
    platform.title              property access through a resolved relationship
    images[0].url               array index
    images[type=cover][0].url   array filter, then index

Property access consults the entity's ``_resolved`` map before the raw field
of the same name, so ``platform.title`` reads the related platform rather
than the raw ``"snes"`` id.  Evaluation is total: a path that cannot be
applied yields ``None`` instead of raising, because callers use it for
optional display fields.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from itemdeck.expressions.lexer import Token, TokenType, tokenize
from itemdeck.models import RESOLVED_KEY

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_int_prefix(text: str) -> int | None:
    """Parse the leading integer of *text* (``"7th"`` -> 7); None if there is none."""
    match = _INT_PREFIX.match(text)
    return int(match.group(1)) if match else None


def parse_float_prefix(text: str) -> float | None:
    """Parse the leading decimal number of *text* (``"12.5px"`` -> 12.5)."""
    match = _FLOAT_PREFIX.match(text)
    return float(match.group(1)) if match else None


def is_number(value: Any) -> bool:
    """True for int/float values; booleans are not numbers here."""
    return isinstance(value, int | float) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PropertyStep:
    name: str


@dataclass(frozen=True)
class IndexStep:
    index: int


@dataclass(frozen=True)
class FilterStep:
    field: str
    value: str


Step = PropertyStep | IndexStep | FilterStep


@dataclass(frozen=True)
class FieldPath:
    """A parsed field path: an ordered tuple of steps."""

    source: str
    steps: tuple[Step, ...]

    def evaluate(self, record: Any) -> Any:
        current = record
        for step in self.steps:
            if current is None:
                return None
            current = _apply_step(current, step)
        return current


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class _PathParser:
    """Recursive-descent parser over the shared token stream.

    Grammar::

        path    := step* END
        step    := NAME | DOT | bracket
        bracket := "[" TEXT? ("=" TEXT)? "]"

    Anything else is skipped.  An unterminated bracket ends the path.
    """

    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    def _current(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.type is not TokenType.END:
            self.pos += 1
        return token

    def parse(self) -> list[Step]:
        steps: list[Step] = []
        while (token := self._current()).type is not TokenType.END:
            if token.type is TokenType.NAME:
                steps.append(PropertyStep(self._advance().value))
            elif token.type is TokenType.LBRACKET:
                self._advance()
                step, closed = self._parse_bracket()
                if not closed:
                    break
                if step is not None:
                    steps.append(step)
            else:
                # Stray dots, "??" or text outside brackets carry no meaning.
                self._advance()
        return steps

    def _parse_bracket(self) -> tuple[Step | None, bool]:
        head = ""
        value: str | None = None
        if self._current().type is TokenType.TEXT:
            head = self._advance().value
        if self._current().type is TokenType.EQUALS:
            self._advance()
            value = self._advance().value if self._current().type is TokenType.TEXT else ""
        if self._current().type is not TokenType.RBRACKET:
            return None, False
        self._advance()

        if value is not None:
            return FilterStep(head, value), True
        index = parse_int_prefix(head)
        return (IndexStep(index) if index is not None else None), True


@functools.lru_cache(maxsize=512)
def parse_field_path(path: str) -> FieldPath:
    """Parse *path* into a :class:`FieldPath`.  Never raises."""
    return FieldPath(source=path, steps=tuple(_PathParser(tokenize(path)).parse()))


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _apply_step(current: Any, step: Step) -> Any:
    if isinstance(step, PropertyStep):
        if not isinstance(current, Mapping):
            return None
        resolved = current.get(RESOLVED_KEY)
        if isinstance(resolved, Mapping) and step.name in resolved:
            return resolved[step.name]
        return current.get(step.name)

    if not _is_array(current):
        return None

    if isinstance(step, IndexStep):
        if 0 <= step.index < len(current):
            return current[step.index]
        return None

    if not step.field:
        return []
    return [
        item
        for item in current
        if isinstance(item, Mapping) and step.field in item and item[step.field] == step.value
    ]


def _is_array(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, str | bytes)


def get_field_value(entity: Mapping[str, Any], path: str) -> Any:
    """Get a value from an entity using a field path.

    Examples
    --------
    >>> entity = {
    ...     "id": "game-1",
    ...     "title": "Super Metroid",
    ...     "platform": "snes",
    ...     "_resolved": {"platform": {"id": "snes", "title": "SNES"}},
    ...     "images": [{"url": "cover.jpg", "type": "cover"}],
    ... }
    >>> get_field_value(entity, "platform.title")
    'SNES'
    >>> get_field_value(entity, "images[type=cover][0].url")
    'cover.jpg'
    >>> get_field_value(entity, "missing[0]") is None
    True
    """
    return parse_field_path(path).evaluate(entity)


def _format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def get_string_value(entity: Mapping[str, Any], path: str, fallback: str = "") -> str:
    """Resolve *path* as a string; numbers are converted, anything else falls back."""
    value = get_field_value(entity, path)
    if isinstance(value, str):
        return value
    if is_number(value):
        return _format_number(value)
    return fallback


def get_number_value(
    entity: Mapping[str, Any], path: str, fallback: float | None = None
) -> float | int | None:
    """Resolve *path* as a number; numeric strings are parsed, anything else falls back."""
    value = get_field_value(entity, path)
    if is_number(value):
        return value
    if isinstance(value, str):
        parsed = parse_float_prefix(value)
        return fallback if parsed is None else parsed
    return fallback


def get_images_value(entity: Mapping[str, Any], path: str = "images") -> list[dict[str, Any]]:
    """Resolve *path* and keep only Image-shaped elements (mappings with ``url``)."""
    value = get_field_value(entity, path)
    if not _is_array(value):
        return []
    return [item for item in value if isinstance(item, Mapping) and "url" in item]
