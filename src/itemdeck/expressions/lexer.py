"""Tokenizer shared by the field-path and image-selector languages.

Both languages are built from the same handful of symbols::

    platform.title
    images[type=cover][0].url
    images[isPrimary=true][0] ?? images[0]

Outside brackets a NAME runs to the next ``.``, ``[``, ``]`` or ``??`` with
the ends trimmed, so property names may contain spaces, ``=`` or a single
``?``.  Inside brackets everything up to ``=`` or ``]`` is a single TEXT
token so that filter values may contain spaces, dots or dashes.  The tokenizer never
raises: characters it does not understand become TEXT tokens and the
parsers decide what to do with them.
"""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass


class TokenType(enum.Enum):
    NAME = enum.auto()  # platform, images, _resolved
    DOT = enum.auto()  # .
    LBRACKET = enum.auto()  # [
    RBRACKET = enum.auto()  # ]
    EQUALS = enum.auto()  # =
    FALLBACK = enum.auto()  # ??
    TEXT = enum.auto()  # raw bracket content: 0, type, cover art
    END = enum.auto()


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    position: int


_NAME_STOP = frozenset(".[]")


class Lexer:
    """Single-pass tokenizer.

    Usage:
        tokens = list(Lexer("images[type=cover][0]").tokenize())
    """

    def __init__(self, source: str) -> None:
        self.source = source
        self.pos = 0
        self.length = len(source)
        self._in_brackets = False

    def _current(self) -> str | None:
        if self.pos >= self.length:
            return None
        return self.source[self.pos]

    def _peek(self, offset: int = 1) -> str | None:
        pos = self.pos + offset
        if pos >= self.length:
            return None
        return self.source[pos]

    def tokenize(self) -> Iterator[Token]:
        while (ch := self._current()) is not None:
            start = self.pos

            if ch == "[":
                self.pos += 1
                self._in_brackets = True
                yield Token(TokenType.LBRACKET, ch, start)
            elif ch == "]":
                self.pos += 1
                self._in_brackets = False
                yield Token(TokenType.RBRACKET, ch, start)
            elif self._in_brackets:
                yield from self._bracket_content()
            elif ch.isspace():
                self.pos += 1
            elif ch == ".":
                self.pos += 1
                yield Token(TokenType.DOT, ch, start)
            elif ch == "?" and self._peek() == "?":
                self.pos += 2
                yield Token(TokenType.FALLBACK, "??", start)
            else:
                yield self._name()

        yield Token(TokenType.END, "", self.pos)

    def _name(self) -> Token:
        start = self.pos
        while (ch := self._current()) is not None and ch not in _NAME_STOP:
            if ch == "?" and self._peek() == "?":
                break
            self.pos += 1
        return Token(TokenType.NAME, self.source[start : self.pos].rstrip(), start)

    def _bracket_content(self) -> Iterator[Token]:
        """Emit TEXT / EQUALS tokens until the closing bracket (or end of input)."""
        start = self.pos
        while (ch := self._current()) is not None and ch not in "=]":
            self.pos += 1
        text = self.source[start : self.pos].strip()
        if text:
            yield Token(TokenType.TEXT, text, start)
        if self._current() == "=":
            yield Token(TokenType.EQUALS, "=", self.pos)
            self.pos += 1
            value_start = self.pos
            # Filter values run to the closing bracket and may contain "=".
            while (ch := self._current()) is not None and ch != "]":
                self.pos += 1
            value = self.source[value_start : self.pos].strip()
            yield Token(TokenType.TEXT, value, value_start)


def tokenize(source: str) -> list[Token]:
    """Return the full token list for *source*, always ending with END."""
    return list(Lexer(source).tokenize())
