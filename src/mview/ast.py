"""AST node types for parsed mview documents."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from mview.tokens import Span

# ---------------------------------------------------------------------------
# Attribute values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Literal:
    """A string, number, boolean or None literal, kept as Python source."""

    code: str
    span: Span


@dataclass(frozen=True, slots=True)
class Expression:
    """Embedded Python expression text, copied verbatim into the output.

    reactive: written as ``[expr]``, lowered to a zero-argument lambda.
    fmt: written as ``f["fmt", args]``; code holds the inside of the brackets.
    """

    code: str
    span: Span
    reactive: bool = False
    fmt: bool = False


@dataclass(frozen=True, slots=True)
class Shorthand:
    """Bare flag attribute (``checked``), equivalent to ``checked=True``."""

    span: Span


@dataclass(frozen=True, slots=True)
class EventHandler:
    """``on:event={handler}``."""

    event: str
    handler: Literal | Expression | None
    span: Span


@dataclass(frozen=True, slots=True)
class Spread:
    """``{..attrs}``, a mapping of attributes applied at once."""

    code: str
    span: Span


@dataclass(frozen=True, slots=True)
class Directive:
    """``class:`` / ``style:`` / ``prop:`` / ``attr:`` / ``clone:`` / ``use:`` / ``bind:``."""

    directive: str
    key: str
    value: Literal | Expression | None
    span: Span


AttributeValue = Literal | Expression | Shorthand | EventHandler | Spread | Directive


@dataclass(frozen=True, slots=True)
class Attribute:
    """One attribute entry. key is the final target name, set by the resolver."""

    name: str
    value: AttributeValue
    span: Span
    key: str | None = None


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Element:
    """HTML/SVG/MathML element. children is None when there is no child block."""

    tag: str
    attrs: tuple[Attribute, ...]
    children: tuple[Node, ...] | None
    span: Span
    namespace: str | None = None


@dataclass(frozen=True, slots=True)
class Component:
    """Component (or slot) reference by dotted path.

    args holds the raw closure parameters of ``|a, b| { ... }``.
    """

    path: str
    attrs: tuple[Attribute, ...]
    children: tuple[Node, ...] | None
    span: Span
    args: str | None = None
    slot: bool = False


@dataclass(frozen=True, slots=True)
class TextLiteral:
    """Static text child. code is the original string literal."""

    value: str
    code: str
    span: Span


@dataclass(frozen=True, slots=True)
class ExpressionBlock:
    """Dynamic child inserted verbatim."""

    expr: Expression
    span: Span


@dataclass(frozen=True, slots=True)
class Fragment:
    """Tag-less group of children: ``( ... )``."""

    children: tuple[Node, ...]
    span: Span


class ControlKind(Enum):
    IF = "if"
    FOR = "for"
    MATCH = "match"


@dataclass(frozen=True, slots=True)
class Branch:
    """One arm of a control block.

    keyword is one of if / elif / else / for / case. test is the condition
    for if/elif, the compared value for case, and None otherwise
    (else, loop body, and the ``case _`` default).
    """

    keyword: str
    test: Expression | None
    children: tuple[Node, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class ControlBlock:
    """``@if`` / ``@for`` / ``@match``.

    expression: first condition, iterable, or match subject.
    target: loop target for @for, otherwise None.
    """

    kind: ControlKind
    expression: Expression
    target: Expression | None
    branches: tuple[Branch, ...]
    span: Span


Node = Element | Component | TextLiteral | ExpressionBlock | Fragment | ControlBlock


@dataclass(frozen=True, slots=True)
class Document:
    """Root node: the ordered top-level siblings of one invocation."""

    children: tuple[Node, ...]
    span: Span
