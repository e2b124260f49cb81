"""Canonical re-printing of a parsed Document as view DSL text."""

from __future__ import annotations

import json
import re

from mview.ast import (
    Attribute,
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

INDENT = "    "

_KEY_RE = re.compile(r"[^\W\d]\w*(?:-\w+)*")


def format_document(doc: Document) -> str:
    """Print doc in canonical layout; parsing the result yields the same tree."""
    lines: list[str] = []
    for child in doc.children:
        _format_node(child, 0, lines)
    return "\n".join(lines) + "\n" if lines else ""


def _format_node(node: Node, depth: int, lines: list[str]) -> None:
    pad = INDENT * depth
    if isinstance(node, Element):
        if node.tag == "!DOCTYPE":
            lines.append(f"{pad}!DOCTYPE {node.attrs[0].name};")
            return
        _format_block(pad + _header(node.tag, node.attrs), node.children, depth, lines)
    elif isinstance(node, Component):
        head = ("slot:" if node.slot else "") + node.path
        head = _header(head, node.attrs)
        if node.args is not None:
            head += f" |{node.args}|"
        _format_block(pad + head, node.children, depth, lines)
    elif isinstance(node, TextLiteral):
        lines.append(pad + node.code)
    elif isinstance(node, ExpressionBlock):
        lines.append(pad + _expression(node.expr))
    elif isinstance(node, Fragment):
        if not node.children:
            lines.append(pad + "()")
            return
        lines.append(pad + "(")
        for child in node.children:
            _format_node(child, depth + 1, lines)
        lines.append(pad + ")")
    elif isinstance(node, ControlBlock):
        _format_control(node, depth, lines)
    else:
        raise TypeError(f"unexpected node {type(node).__name__}")


def _format_block(
    head: str,
    children: tuple[Node, ...] | None,
    depth: int,
    lines: list[str],
) -> None:
    if children is None:
        lines.append(head + ";")
    elif not children:
        lines.append(head + " {}")
    else:
        lines.append(head + " {")
        for child in children:
            _format_node(child, depth + 1, lines)
        lines.append(INDENT * depth + "}")


def _format_control(node: ControlBlock, depth: int, lines: list[str]) -> None:
    pad = INDENT * depth
    if node.kind == ControlKind.FOR:
        body = node.branches[0]
        head = f"{pad}@for {node.target.code} in {node.expression.code}"
        _format_block(head, body.children, depth, lines)
        return

    if node.kind == ControlKind.MATCH:
        lines.append(f"{pad}@match {node.expression.code} {{")
        for branch in node.branches:
            test = "_" if branch.test is None else branch.test.code
            _format_block(f"{pad}{INDENT}case {test}", branch.children, depth + 1, lines)
        lines.append(pad + "}")
        return

    for branch in node.branches:
        if branch.keyword == "else":
            head = "@else"
        else:
            assert branch.test is not None
            head = f"@{branch.keyword} {branch.test.code}"
        _format_block(pad + head, branch.children, depth, lines)


def _header(name: str, attrs: tuple[Attribute, ...]) -> str:
    parts = [name]
    parts.extend(_attribute(attr) for attr in attrs)
    return " ".join(parts)


def _attribute(attr: Attribute) -> str:
    value = attr.value
    if isinstance(value, Spread):
        return f"{{..{value.code}}}"
    if attr.name.startswith((".", "#")):
        return attr.name
    if isinstance(value, Shorthand):
        return attr.name
    if isinstance(value, EventHandler):
        return _directive("on", value.event, value.handler)
    if isinstance(value, Directive):
        return _directive(value.directive, value.key, value.value)
    if isinstance(value, Expression) and value.span.start.offset == attr.span.start.offset + 1:
        # {name} shorthand
        return f"{{{attr.name}}}"
    return f"{attr.name}={_value(value)}"


def _directive(directive: str, key: str, value: Literal | Expression | None) -> str:
    key_text = key if _KEY_RE.fullmatch(key) else json.dumps(key, ensure_ascii=False)
    if value is None:
        return f"{directive}:{key_text}"
    return f"{directive}:{key_text}={_value(value)}"


def _value(value: Literal | Expression) -> str:
    if isinstance(value, Literal):
        return value.code
    return _expression(value)


def _expression(expr: Expression) -> str:
    if expr.fmt:
        return f"f[{expr.code}]"
    if expr.reactive:
        return f"[{expr.code}]"
    return f"{{{expr.code}}}"
