"""Image selector expressions.

A selector is one or more alternatives separated by ``??``; the first
alternative that selects at least one image wins::

    images[0]                          first image
    images[type=cover]                 every cover image
    images[type=cover][0]              first cover image
    images[isPrimary=true][0] ?? images[type=cover][0] ?? images[0]

Within an alternative, bracket tokens apply left to right to the remaining
images: ``[n]`` keeps only the nth image (nothing when out of range) and
``[field=value]`` keeps images whose field equals the value exactly.  The
literals ``true`` and ``false`` compare as booleans.
"""

from __future__ import annotations

import functools
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from itemdeck.expressions.field_path import parse_int_prefix
from itemdeck.expressions.lexer import Token, TokenType, tokenize

DEFAULT_PRIMARY_EXPRESSION = "images[isPrimary=true][0] ?? images[type=cover][0] ?? images[0]"
LOGO_EXPRESSION = "images[type=logo][0]"

ImageLike = Mapping[str, Any]


@dataclass(frozen=True)
class SelectIndex:
    index: int


@dataclass(frozen=True)
class SelectFilter:
    field: str
    value: str | bool


SelectStep = SelectIndex | SelectFilter


@dataclass(frozen=True)
class Chain:
    """One ``??``-separated alternative."""

    steps: tuple[SelectStep, ...]

    def apply(self, images: Sequence[ImageLike]) -> list[ImageLike]:
        result = list(images)
        for step in self.steps:
            if not result:
                break
            if isinstance(step, SelectIndex):
                result = [result[step.index]] if 0 <= step.index < len(result) else []
            elif step.field and step.value != "":
                result = [img for img in result if _field_equals(img, step.field, step.value)]
        return result


@dataclass(frozen=True)
class Selector:
    source: str
    alternatives: tuple[Chain, ...]

    def select(self, images: Sequence[ImageLike]) -> list[ImageLike]:
        if not images:
            return []
        for chain in self.alternatives:
            result = chain.apply(images)
            if result:
                return result
        return []


def _field_equals(image: ImageLike, field: str, value: str | bool) -> bool:
    if not isinstance(image, Mapping) or field not in image:
        return False
    actual = image[field]
    if isinstance(value, bool):
        return isinstance(actual, bool) and actual is value
    return isinstance(actual, str) and actual == value


class _SelectorParser:
    """Recursive-descent parser for selector expressions.

    Grammar::

        selector    := alternative ("??" alternative)* END
        alternative := NAME? (DOT | bracket)*
        bracket     := "[" TEXT? ("=" TEXT)? "]"

    The leading name (conventionally ``images``) names the source array and
    is ignored.  Malformed and unterminated brackets are skipped.
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

    def parse(self) -> list[Chain]:
        alternatives = [self._parse_alternative()]
        while self._current().type is TokenType.FALLBACK:
            self._advance()
            alternatives.append(self._parse_alternative())
        return alternatives

    def _parse_alternative(self) -> Chain:
        steps: list[SelectStep] = []
        while (token := self._current()).type not in (TokenType.FALLBACK, TokenType.END):
            if token.type is TokenType.LBRACKET:
                self._advance()
                step = self._parse_bracket()
                if step is not None:
                    steps.append(step)
            else:
                self._advance()
        return Chain(tuple(steps))

    def _parse_bracket(self) -> SelectStep | None:
        head = ""
        value: str | None = None
        if self._current().type is TokenType.TEXT:
            head = self._advance().value
        if self._current().type is TokenType.EQUALS:
            self._advance()
            value = self._advance().value if self._current().type is TokenType.TEXT else ""
        if self._current().type is not TokenType.RBRACKET:
            return None
        self._advance()

        if value is not None:
            return SelectFilter(head, _parse_literal(value))
        index = parse_int_prefix(head)
        return SelectIndex(index) if index is not None else None


def _parse_literal(raw: str) -> str | bool:
    if raw == "true":
        return True
    if raw == "false":
        return False
    return raw


@functools.lru_cache(maxsize=128)
def parse_selector(expression: str) -> Selector:
    """Parse a selector expression.  Never raises."""
    alternatives = _SelectorParser(tokenize(expression)).parse()
    return Selector(source=expression, alternatives=tuple(alternatives))


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def select_images(images: Sequence[ImageLike] | None, expression: str) -> list[ImageLike]:
    """Select every image matched by the first successful alternative."""
    if not images:
        return []
    return parse_selector(expression).select(images)


def select_image(images: Sequence[ImageLike] | None, expression: str) -> ImageLike | None:
    """Select a single image (the first of :func:`select_images`)."""
    selected = select_images(images, expression)
    return selected[0] if selected else None


def get_primary_image(
    images: Sequence[ImageLike] | None, expression: str | None = None
) -> ImageLike | None:
    """Return the primary image.

    By default: the image flagged ``isPrimary``, else the first cover, else
    the first image.
    """
    if not images:
        return None
    return select_image(images, expression or DEFAULT_PRIMARY_EXPRESSION)


def get_primary_image_url(
    images: Sequence[ImageLike] | None,
    expression: str | None = None,
    fallback_url: str | None = None,
) -> str:
    image = get_primary_image(images, expression)
    url = image.get("url") if image is not None else None
    if isinstance(url, str):
        return url
    return fallback_url or ""


def get_logo_url(images: Sequence[ImageLike] | None) -> str | None:
    logo = select_image(images, LOGO_EXPRESSION)
    url = logo.get("url") if logo is not None else None
    return url if isinstance(url, str) else None


def _is_absolute_url(url: str) -> bool:
    return url.startswith(("http://", "https://"))


def get_image_urls(images: Sequence[ImageLike | str] | None) -> list[str]:
    """Collect absolute http(s) URLs from Image objects or bare URL strings.

    Relative URLs and malformed entries are dropped silently.
    """
    if not images:
        return []
    urls: list[str] = []
    for image in images:
        if isinstance(image, str):
            url = image
        elif isinstance(image, Mapping) and isinstance(image.get("url"), str):
            url = image["url"]
        else:
            continue
        if _is_absolute_url(url):
            urls.append(url)
    return urls


def format_attribution(images: Sequence[ImageLike] | None) -> str | None:
    """Credit line for the first image carrying attribution.

    ``"Image from Wikimedia Commons by Jane Doe"``; None when no image has
    a source or author.
    """
    for image in images or ():
        attribution = image.get("attribution") if isinstance(image, Mapping) else None
        if not attribution:
            continue
        parts: list[str] = []
        if isinstance(attribution, Mapping):
            if attribution.get("source"):
                parts.append(f"Image from {attribution['source']}")
            if attribution.get("author"):
                parts.append(f"by {attribution['author']}")
        return " ".join(parts) or None
    return None
