"""--debug AST dump to stderr."""

from __future__ import annotations

import sys
from typing import TextIO

from mview.ast import (
    Attribute,
    Component,
    ControlBlock,
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


def dump_ast(doc: Document, *, file: TextIO = sys.stderr) -> None:
    """Print a human-readable AST tree to *file*."""
    file.write("Document\n")
    for child in doc.children:
        _dump_node(child, 1, file)


def _indent(depth: int) -> str:
    return "  " * depth


def _dump_node(node: Node, depth: int, f: TextIO) -> None:
    if isinstance(node, Element):
        ns = f" [{node.namespace}]" if node.namespace else ""
        f.write(f"{_indent(depth)}Element {node.tag}{ns}\n")
        _dump_attrs(node.attrs, depth + 1, f)
        _dump_children(node.children, depth + 1, f)
    elif isinstance(node, Component):
        kind = "Slot" if node.slot else "Component"
        args = f" |{node.args}|" if node.args is not None else ""
        f.write(f"{_indent(depth)}{kind} {node.path}{args}\n")
        _dump_attrs(node.attrs, depth + 1, f)
        _dump_children(node.children, depth + 1, f)
    elif isinstance(node, TextLiteral):
        f.write(f"{_indent(depth)}Text({node.value!r})\n")
    elif isinstance(node, ExpressionBlock):
        f.write(f"{_indent(depth)}Expression ")
        _dump_value_inline(node.expr, f)
        f.write("\n")
    elif isinstance(node, Fragment):
        f.write(f"{_indent(depth)}Fragment\n")
        for child in node.children:
            _dump_node(child, depth + 1, f)
    elif isinstance(node, ControlBlock):
        target = f" {node.target.code} in" if node.target is not None else ""
        f.write(f"{_indent(depth)}@{node.kind.value}{target} {node.expression.code}\n")
        for branch in node.branches:
            test = f" {branch.test.code}" if branch.test is not None else ""
            f.write(f"{_indent(depth + 1)}{branch.keyword}{test}\n")
            for child in branch.children:
                _dump_node(child, depth + 2, f)


def _dump_attrs(attrs: tuple[Attribute, ...], depth: int, f: TextIO) -> None:
    for attr in attrs:
        key = f" -> {attr.key}" if attr.key is not None and attr.key != attr.name else ""
        f.write(f"{_indent(depth)}Attr {attr.name}{key} = ")
        _dump_value_inline(attr.value, f)
        f.write("\n")


def _dump_children(children: tuple[Node, ...] | None, depth: int, f: TextIO) -> None:
    if children is None:
        return
    for child in children:
        _dump_node(child, depth, f)


def _dump_value_inline(
    value: Literal | Expression | Shorthand | EventHandler | Spread | Directive | None,
    f: TextIO,
) -> None:
    if value is None:
        f.write("None")
    elif isinstance(value, Literal):
        f.write(f"Literal({value.code})")
    elif isinstance(value, Expression):
        if value.fmt:
            f.write(f"Format[{value.code}]")
        elif value.reactive:
            f.write(f"Reactive[{value.code}]")
        else:
            f.write(f"Expr{{{value.code}}}")
    elif isinstance(value, Shorthand):
        f.write("Shorthand")
    elif isinstance(value, Spread):
        f.write(f"Spread({value.code})")
    elif isinstance(value, EventHandler):
        f.write(f"On({value.event}, ")
        _dump_value_inline(value.handler, f)
        f.write(")")
    elif isinstance(value, Directive):
        f.write(f"Directive({value.directive}:{value.key}, ")
        _dump_value_inline(value.value, f)
        f.write(")")
