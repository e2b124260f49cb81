"""Token types, data structures, and character classification helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    IDENT = auto()  # Python identifier
    NUMBER = auto()  # any Python numeric literal
    STRING = auto()  # any Python string literal, prefixes and quotes included
    PUNCT = auto()  # operator or single punctuation character
    HASH = auto()  # '#' directly followed by an identifier (id selector)
    COMMENT = auto()  # kept aside by the lexer, never in the token stream

    # Delimiters
    OPEN = auto()  # ( [ {
    CLOSE = auto()  # ) ] }

    EOF = auto()


@dataclass(frozen=True, slots=True)
class Position:
    """Source position, 1-based line and column, 0-based character offset."""

    line: int
    column: int
    offset: int


@dataclass(frozen=True, slots=True)
class Span:
    """Source range from start to end position."""

    start: Position
    end: Position

    def join(self, other: Span) -> Span:
        """Return the span covering self through other."""
        return Span(self.start, other.end)


@dataclass(frozen=True, slots=True)
class Token:
    """A single lexer token; value is the exact source text."""

    type: TokenType
    value: str
    span: Span


# Longest match first.
PUNCTUATION: tuple[str, ...] = (
    "**=",
    "//=",
    ">>=",
    "<<=",
    "...",
    "..",
    "**",
    "//",
    "==",
    "!=",
    "<=",
    ">=",
    "->",
    ":=",
    "<<",
    ">>",
    "+=",
    "-=",
    "*=",
    "/=",
    "%=",
    "&=",
    "|=",
    "^=",
    "@=",
    "+",
    "-",
    "*",
    "/",
    "%",
    "&",
    "|",
    "^",
    "~",
    "<",
    ">",
    "=",
    ".",
    ",",
    ":",
    ";",
    "@",
    "!",
)

OPENERS: dict[str, str] = {"(": ")", "[": "]", "{": "}"}
CLOSERS: dict[str, str] = {v: k for k, v in OPENERS.items()}

STRING_PREFIXES = frozenset(
    {"r", "u", "b", "f", "br", "rb", "fr", "rf"},
)


def is_ident_start(ch: str) -> bool:
    """Return True if ch can start a Python identifier."""
    return ch == "_" or ch.isalpha()


def is_ident_char(ch: str) -> bool:
    """Return True if ch can continue a Python identifier."""
    return ch == "_" or ch.isalnum()


def joined(a, b) -> bool:
    """Return True if b starts exactly where a ends (no whitespace between).

    Accepts spans or anything carrying a span (tokens, delimiter groups).
    """
    a_span = a if isinstance(a, Span) else a.span
    b_span = b if isinstance(b, Span) else b.span
    return a_span.end.offset == b_span.start.offset
