"""Lowering: turns a resolved Document into a Python view-builder expression."""

from __future__ import annotations

import json
import keyword
import logging
import re
from dataclasses import dataclass

from mview.ast import (
    Attribute,
    Branch,
    Component,
    ControlBlock,
    ControlKind,
    Directive,
    Document,
    Element,
    EventHandler,
    Expression,
    ExpressionBlock,
    Fragment,
    Literal,
    Node,
    Shorthand,
    Spread,
    TextLiteral,
)
from mview.tokens import Span

logger = logging.getLogger(__name__)

# Dotted names, plain numbers and escape-free string literals need no parentheses.
_SIMPLE_EXPR = re.compile(
    r"""[^\W\d]\w*(?:\.[^\W\d]\w*)*|\d[\d_]*(?:\.\d[\d_]*)?|"[^"\\\n]*"|'[^'\\\n]*'"""
)


@dataclass(frozen=True, slots=True)
class CompileOptions:
    """Code generation switches.

    runtime: name the generated code uses to reach the host view API.
    nightly: target the compact child API (bare strings, expressions and
    lambdas as children, no text/into_view adaptors).
    """

    runtime: str = "view"
    nightly: bool = False


@dataclass(frozen=True, slots=True)
class Mapping:
    """Output character range [start, end) copied verbatim from a DSL span."""

    start: int
    end: int
    span: Span


@dataclass(frozen=True, slots=True)
class Output:
    """Generated expression source and its source map."""

    code: str
    mappings: tuple[Mapping, ...]

    def mapping_at(self, offset: int) -> Mapping | None:
        """Return the innermost mapping containing an output offset."""
        found: Mapping | None = None
        for m in self.mappings:
            if m.start <= offset <= m.end and (found is None or m.start >= found.start):
                found = m
        return found


class _Emitter:
    def __init__(self) -> None:
        self._parts: list[str] = []
        self._length = 0
        self._mappings: list[Mapping] = []

    def write(self, text: str) -> None:
        self._parts.append(text)
        self._length += len(text)

    def copy(self, code: str, span: Span) -> None:
        """Write DSL text verbatim and remember where it came from."""
        start = self._length
        self.write(code)
        self._mappings.append(Mapping(start, self._length, span))

    def output(self) -> Output:
        return Output("".join(self._parts), tuple(self._mappings))


def _str(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


class CodeGenerator:
    """Pure tree-to-text rewrite of a resolved Document."""

    def __init__(self, options: CompileOptions | None = None) -> None:
        self._options = options if options is not None else CompileOptions()
        self._rt = self._options.runtime
        self._out = _Emitter()

    def generate(self, doc: Document) -> Output:
        if len(doc.children) == 1:
            self._node(doc.children[0])
        else:
            self._out.write(f"{self._rt}.fragment(")
            self._list(doc.children)
            self._out.write(")")
        result = self._out.output()
        logger.debug("generated %d characters, %d mappings", len(result.code), len(result.mappings))
        return result

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _list(self, nodes: tuple[Node, ...]) -> None:
        self._out.write("[")
        for i, node in enumerate(nodes):
            if i:
                self._out.write(", ")
            self._node(node)
        self._out.write("]")

    def _node(self, node: Node) -> None:
        if isinstance(node, Element):
            self._element(node)
        elif isinstance(node, Component):
            self._component(node)
        elif isinstance(node, TextLiteral):
            self._text(node)
        elif isinstance(node, ExpressionBlock):
            self._dynamic(node)
        elif isinstance(node, Fragment):
            self._out.write(f"{self._rt}.fragment(")
            self._list(node.children)
            self._out.write(")")
        elif isinstance(node, ControlBlock):
            self._control(node)
        else:
            raise TypeError(f"unexpected node {type(node).__name__}")

    def _element(self, node: Element) -> None:
        if node.namespace == "doctype":
            self._out.write(f"{self._rt}.html.doctype({_str(node.attrs[0].name)})")
            return
        if node.namespace == "custom":
            self._out.write(f"{self._rt}.html.custom({_str(node.tag)})")
        else:
            assert node.namespace is not None, "element was not resolved"
            tag = node.tag + "_" if keyword.iskeyword(node.tag) else node.tag
            self._out.write(f"{self._rt}.{node.namespace}.{tag}()")
        self._attr_chain(node.attrs, component=False)
        if node.children is not None:
            self._out.write(".child(")
            self._list(node.children)
            self._out.write(")")

    def _component(self, node: Component) -> None:
        ctor = "slot" if node.slot else "component"
        self._out.write(f"{self._rt}.{ctor}({node.path})")
        self._attr_chain(node.attrs, component=True)

        slots: dict[str, list[Component]] = {}
        rest: list[Node] = []
        for child in node.children or ():
            if isinstance(child, Component) and child.slot:
                slots.setdefault(_slot_name(child.path), []).append(child)
            else:
                rest.append(child)

        for name, items in slots.items():
            self._out.write(f".slot({_str(name)}, ")
            if len(items) == 1:
                self._component(items[0])
            else:
                self._out.write("[")
                for i, item in enumerate(items):
                    if i:
                        self._out.write(", ")
                    self._component(item)
                self._out.write("]")
            self._out.write(")")

        if node.children is None or (not rest and slots and node.args is None):
            self._out.write(".children()")
            return

        params = [node.args] if node.args else []
        params.extend(
            f"{attr.value.key}={attr.value.key}"
            for attr in node.attrs
            if isinstance(attr.value, Directive) and attr.value.directive == "clone"
        )
        self._out.write(".children(")
        self._lambda(", ".join(params))
        self._list(tuple(rest))
        self._out.write(")")

    def _text(self, node: TextLiteral) -> None:
        if self._options.nightly:
            self._out.copy(node.code, node.span)
            return
        self._out.write(f"{self._rt}.text(")
        self._out.copy(node.code, node.span)
        self._out.write(")")

    def _dynamic(self, node: ExpressionBlock) -> None:
        if self._options.nightly:
            self._expr(node.expr)
            return
        self._out.write(f"{self._rt}.into_view(")
        self._expr(node.expr)
        self._out.write(")")

    # ------------------------------------------------------------------
    # Control blocks
    # ------------------------------------------------------------------

    def _control(self, node: ControlBlock) -> None:
        if node.kind == ControlKind.IF:
            self._if_chain(node.branches)
        elif node.kind == ControlKind.FOR:
            self._for(node)
        elif node.kind == ControlKind.MATCH:
            self._match(node)
        else:
            raise TypeError(f"unexpected control block {node.kind}")

    def _if_chain(self, branches: tuple[Branch, ...]) -> None:
        head, rest = branches[0], branches[1:]
        assert head.test is not None
        self._out.write(f"{self._rt}.show(")
        self._lambda("")
        self._expr(head.test)
        self._out.write(", ")
        self._lambda("")
        self._list(head.children)
        self._out.write(", ")
        if not rest:
            self._out.write("None")
        elif rest[0].keyword == "elif":
            self._lambda("")
            self._out.write("[")
            self._if_chain(rest)
            self._out.write("]")
        else:
            self._lambda("")
            self._list(rest[0].children)
        self._out.write(")")

    def _for(self, node: ControlBlock) -> None:
        assert node.target is not None
        body = node.branches[0]
        self._out.write(f"{self._rt}.each(")
        self._lambda("")
        self._expr(node.expression)
        self._out.write(", ")

        key = _loop_key(body.children)
        if key is None:
            self._out.write("None")
        else:
            self._loop_lambda(node.target, lambda: self._value(key))
        self._out.write(", ")
        self._loop_lambda(node.target, lambda: self._list(body.children))
        self._out.write(")")

    def _loop_lambda(self, target: Expression, body) -> None:
        """Emit a one-argument lambda binding the loop target.

        Anything but a plain name is bound by a one-item comprehension, which
        accepts every form of `for` target, nested tuples included.
        """
        if target.code.isidentifier() and not keyword.iskeyword(target.code):
            self._out.write("lambda ")
            self._out.copy(target.code, target.span)
            self._out.write(": ")
            body()
            return
        self._out.write("lambda _item: [")
        body()
        self._out.write(" for ")
        self._out.copy(target.code, target.span)
        self._out.write(" in [_item]][0]")

    def _match(self, node: ControlBlock) -> None:
        self._out.write(f"{self._rt}.switch(")
        self._lambda("")
        self._expr(node.expression)
        self._out.write(", [")
        fallback: Branch | None = None
        first = True
        for branch in node.branches:
            if branch.test is None:
                fallback = branch
                continue
            if not first:
                self._out.write(", ")
            first = False
            self._out.write("(")
            self._expr(branch.test)
            self._out.write(", ")
            self._lambda("")
            self._list(branch.children)
            self._out.write(")")
        self._out.write("], ")
        if fallback is None:
            self._out.write("None")
        else:
            self._lambda("")
            self._list(fallback.children)
        self._out.write(")")

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def _attr_chain(self, attrs: tuple[Attribute, ...], *, component: bool) -> None:
        # Spreads first, in source order; named attributes override them.
        for attr in attrs:
            if isinstance(attr.value, Spread):
                self._out.write(".attrs(")
                self._expr(Expression(attr.value.code, attr.value.span))
                self._out.write(")")
        for attr in attrs:
            if not isinstance(attr.value, Spread):
                self._attr(attr, component=component)

    def _attr(self, attr: Attribute, *, component: bool) -> None:
        value = attr.value
        key = attr.key
        assert key is not None, "attribute was not resolved"

        if key == "key":
            return
        if key == "ref":
            self._out.write(".node_ref(")
            self._value(value)
            self._out.write(")")
            return

        if isinstance(value, EventHandler):
            self._out.write(f".on({_str(value.event)}, ")
            self._value(value.handler)
            self._out.write(")")
            return

        if isinstance(value, Directive):
            if value.directive == "clone":
                return
            if value.directive == "use":
                self._out.write(f".use({value.key.replace('-', '_')}, ")
                self._value(value.value)
                self._out.write(")")
                return
            method = "class_" if value.directive == "class" else value.directive
            self._out.write(f".{method}({_str(value.key)}, ")
            self._value(value.value)
            self._out.write(")")
            return

        if key.startswith("attr:"):
            self._out.write(f".attr({_str(key[5:])}, ")
        elif component:
            self._out.write(f".prop({_str(key)}, ")
        else:
            self._out.write(f".attr({_str(key)}, ")
        self._value(value)
        self._out.write(")")

    def _value(self, value: Literal | Expression | Shorthand | Attribute | None) -> None:
        if isinstance(value, Attribute):
            value = value.value
        if value is None:
            self._out.write("None")
        elif isinstance(value, Shorthand):
            self._out.write("True")
        elif isinstance(value, Literal):
            self._out.copy(value.code, value.span)
        elif isinstance(value, Expression):
            self._expr(value)
        else:
            raise TypeError(f"unexpected attribute value {type(value).__name__}")

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _expr(self, expr: Expression) -> None:
        """Emit an embedded expression; reactive forms become zero-argument lambdas."""
        if expr.fmt:
            self._lambda("")
            self._out.write("str.format(")
            self._out.copy(expr.code, expr.span)
            self._out.write(")")
            return
        if expr.reactive:
            self._lambda("")
        wrap = not _is_simple(expr.code)
        if wrap:
            self._out.write("(")
        self._out.copy(expr.code, expr.span)
        if wrap:
            self._out.write(")")

    def _lambda(self, params: str) -> None:
        self._out.write(f"lambda {params}: " if params else "lambda: ")


def _is_simple(code: str) -> bool:
    return _SIMPLE_EXPR.fullmatch(code) is not None


def _slot_name(path: str) -> str:
    """``ElseIf`` -> ``else_if``; only the last path segment counts."""
    name = path.rsplit(".", 1)[-1]
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _loop_key(children: tuple[Node, ...]) -> Attribute | None:
    for child in children:
        if isinstance(child, (Element, Component)):
            for attr in child.attrs:
                if attr.key == "key":
                    return attr
    return None


def generate(doc: Document, options: CompileOptions | None = None) -> Output:
    """Convenience function: lower a resolved Document."""
    return CodeGenerator(options).generate(doc)
