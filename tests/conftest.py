"""Shared test fixtures and helpers."""

from __future__ import annotations

from dataclasses import fields, is_dataclass

import pytest

from mview import Expansion, compile, expand
from mview.ast import Component, Document, Element
from mview.codegen import CompileOptions
from mview.errors import Diagnostic, DiagnosticKind, Diagnostics
from mview.lexer import tokenize
from mview.parser import Parser, parse
from mview.resolve import ResolveOptions, Resolver
from mview.structure import structure
from mview.tokens import Token, TokenType


@pytest.fixture
def lex():
    """Return a helper that tokenizes source and returns tokens (excluding EOF)."""

    def _lex(source: str) -> list[Token]:
        tokens = tokenize(source)
        # Strip trailing EOF for convenience
        return [t for t in tokens if t.type != TokenType.EOF]

    return _lex


@pytest.fixture
def parse_source():
    """Return a helper that parses source and returns a Document."""

    def _parse(source: str, filename: str = "test.mview") -> Document:
        return parse(source, filename)

    return _parse


@pytest.fixture
def resolve_source():
    """Return a helper that parses and resolves source, returning (doc, diagnostics)."""

    def _resolve(source: str, **options) -> tuple[Document, tuple[Diagnostic, ...]]:
        diagnostics = Diagnostics()
        doc = Parser(structure(source), source, diagnostics).parse()
        doc = Resolver(ResolveOptions(**options), diagnostics).resolve(doc)
        return doc, diagnostics.items()

    return _resolve


@pytest.fixture
def compile_source():
    """Return a helper that compiles source to code, raising CompileError on failure."""

    def _compile(source: str, **options) -> str:
        return compile(source, "test.mview", CompileOptions(**options))

    return _compile


@pytest.fixture
def expand_source():
    """Return a helper that runs the full pipeline and returns the Expansion."""

    def _expand(source: str, **options) -> Expansion:
        return expand(source, "test.mview", resolve_options=ResolveOptions(**options))

    return _expand


def kinds(diagnostics) -> list[DiagnosticKind]:
    """Return the kinds of a diagnostic sequence, in order."""
    return [d.kind for d in diagnostics]


def assert_types(tokens: list[Token], expected: list[TokenType]) -> None:
    """Assert that the token types match the expected list."""
    actual = [t.type for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def assert_values(tokens: list[Token], expected: list[str]) -> None:
    """Assert that the token values match the expected list."""
    actual = [t.value for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def assert_node(
    node: object,
    name: str,
    num_attrs: int = 0,
    has_children: bool = False,
) -> None:
    """Assert basic properties of an Element or Component node."""
    assert isinstance(node, (Element, Component)), f"Expected a node, got {type(node).__name__}"
    actual = node.tag if isinstance(node, Element) else node.path
    assert actual == name, f"Expected name '{name}', got '{actual}'"
    assert len(node.attrs) == num_attrs, f"Expected {num_attrs} attrs, got {len(node.attrs)}"
    if has_children:
        assert node.children is not None, "Expected a child block, got None"
    else:
        assert node.children is None, f"Expected no child block, got {node.children}"


def shape(obj: object) -> object:
    """Structural view of an AST value with every span dropped."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return (type(obj).__name__,) + tuple(
            shape(getattr(obj, f.name)) for f in fields(obj) if f.name != "span"
        )
    if isinstance(obj, tuple):
        return tuple(shape(item) for item in obj)
    return obj
