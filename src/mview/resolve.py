"""Resolver: classifies and validates a parsed Document before lowering."""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass, replace

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
from mview.errors import DiagnosticKind, Diagnostics
from mview.tags import DIRECTIVES, RESERVED, TAGS, resolve_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolveOptions:
    """Validation switches.

    strict_spreads: reject named attributes written before a spread, since
    named attributes are always applied after every spread.
    """

    strict_spreads: bool = False


@dataclass(frozen=True, slots=True)
class _Context:
    """Where a child sequence sits."""

    component: bool = False  # direct children of a component or slot
    loop_body: bool = False  # direct children of a @for block


_ROOT = _Context()

# Directives that only make sense on a real DOM element.
_ELEMENT_ONLY = frozenset({"prop", "bind", "use"})


class Resolver:
    """Annotate nodes with resolution decisions and collect diagnostics."""

    def __init__(
        self,
        options: ResolveOptions | None = None,
        diagnostics: Diagnostics | None = None,
    ) -> None:
        self._options = options if options is not None else ResolveOptions()
        self._diagnostics = diagnostics if diagnostics is not None else Diagnostics()

    def resolve(self, doc: Document) -> Document:
        children = self._resolve_children(doc.children, _ROOT)
        return Document(children, doc.span)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _resolve_children(self, nodes: tuple[Node, ...], ctx: _Context) -> tuple[Node, ...]:
        resolved = tuple(self._resolve_node(node, ctx) for node in nodes)
        if ctx.loop_body:
            self._check_loop_keys(resolved)
        return resolved

    def _resolve_node(self, node: Node, ctx: _Context) -> Node:
        if isinstance(node, Element):
            return self._resolve_element(node, ctx)
        if isinstance(node, Component):
            return self._resolve_component(node, ctx)
        if isinstance(node, (TextLiteral, ExpressionBlock)):
            return node
        if isinstance(node, Fragment):
            return Fragment(self._resolve_children(node.children, _ROOT), node.span)
        if isinstance(node, ControlBlock):
            return self._resolve_control(node)
        raise TypeError(f"unexpected node {type(node).__name__}")

    def _resolve_element(self, node: Element, ctx: _Context) -> Element:
        namespace = self._element_namespace(node)

        tag = TAGS.get(node.tag)
        if tag is not None and tag.void and node.children:
            self._diagnostics.error(
                DiagnosticKind.ILLEGAL_CHILDREN,
                f"`{node.tag}` is a void element and cannot have children",
                node.span,
                suggestion=f"write `{node.tag};`",
            )

        attrs = self._resolve_attrs(node.attrs, component=False, ctx=ctx)
        children = None
        if node.children is not None:
            children = self._resolve_children(node.children, _ROOT)
        return replace(node, attrs=attrs, children=children, namespace=namespace)

    def _element_namespace(self, node: Element) -> str | None:
        if node.tag == "!DOCTYPE":
            return "doctype"
        tag = TAGS.get(node.tag)
        if tag is not None:
            return tag.namespace
        if "-" in node.tag:
            return "custom"
        if node.tag.startswith("_") or node.tag != node.tag.lower():
            # already reported while parsing
            return None
        close = difflib.get_close_matches(node.tag, list(TAGS), n=1)
        self._diagnostics.error(
            DiagnosticKind.INVALID_NODE_NAME,
            f"unknown element `{node.tag}`",
            node.span,
            suggestion=(
                f"did you mean `{close[0]}`?"
                if close
                else "custom elements must contain a '-', components start with an uppercase letter"
            ),
        )
        return None

    def _resolve_component(self, node: Component, ctx: _Context) -> Component:
        if node.slot and not ctx.component:
            self._diagnostics.error(
                DiagnosticKind.ILLEGAL_CHILDREN,
                f"slot `{node.path}` must be a direct child of a component",
                node.span,
            )
        attrs = self._resolve_attrs(node.attrs, component=True, ctx=ctx)
        children = None
        if node.children is not None:
            children = self._resolve_children(node.children, _Context(component=True))
        return replace(node, attrs=attrs, children=children)

    def _resolve_control(self, node: ControlBlock) -> ControlBlock:
        ctx = _Context(loop_body=node.kind == ControlKind.FOR)
        branches = tuple(
            Branch(b.keyword, b.test, self._resolve_children(b.children, ctx), b.span)
            for b in node.branches
        )
        return replace(node, branches=branches)

    def _check_loop_keys(self, nodes: tuple[Node, ...]) -> None:
        # duplicates within one node are reported by the parser
        keyed = [
            next(attr for attr in node.attrs if attr.key == "key")
            for node in nodes
            if isinstance(node, (Element, Component))
            and any(attr.key == "key" for attr in node.attrs)
        ]
        if len(keyed) > 1:
            self._diagnostics.error(
                DiagnosticKind.CONFLICTING_ATTRIBUTE,
                "only one child of a `@for` block can provide the `key`",
                keyed[1].span,
                keyed[0].span,
            )

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def _resolve_attrs(
        self,
        attrs: tuple[Attribute, ...],
        *,
        component: bool,
        ctx: _Context,
    ) -> tuple[Attribute, ...]:
        resolved: list[Attribute] = []
        seen: dict[str, Attribute] = {}
        spread_seen = False
        named_before_spread: list[Attribute] = []

        for attr in attrs:
            if isinstance(attr.value, Spread):
                spread_seen = True
                if named_before_spread and self._options.strict_spreads:
                    for named in named_before_spread:
                        self._diagnostics.error(
                            DiagnosticKind.CONFLICTING_ATTRIBUTE,
                            f"`{named.name}` is written before a spread but always overrides it",
                            named.span,
                            attr.span,
                            suggestion=f"move `{named.name}` after the spread",
                        )
                    named_before_spread.clear()
                resolved.append(attr)
                continue

            key = self._attr_key(attr, component=component, ctx=ctx)
            if key is None:
                resolved.append(attr)
                continue

            if key in seen and key not in RESERVED:
                self._diagnostics.error(
                    DiagnosticKind.CONFLICTING_ATTRIBUTE,
                    f"attribute `{attr.name}` conflicts with `{seen[key].name}`",
                    attr.span,
                    seen[key].span,
                )
            elif key not in seen:
                seen[key] = attr
            if not spread_seen:
                named_before_spread.append(attr)
            resolved.append(replace(attr, key=key))

        return tuple(resolved)

    def _attr_key(self, attr: Attribute, *, component: bool, ctx: _Context) -> str | None:
        """Compute the final target name of a non-spread attribute, validating its kind."""
        value = attr.value

        if isinstance(value, EventHandler):
            if not isinstance(value.handler, Expression) or value.handler.reactive:
                self._illegal(
                    attr,
                    f"event handler `on:{value.event}` must be a block",
                    suggestion=f"write `on:{value.event}={{lambda ev: ...}}`",
                )
            return f"on:{value.event}"

        if isinstance(value, Directive):
            return self._directive_key(attr, value, component=component)

        if attr.name.startswith("#"):
            return "attr:id" if component else "id"

        name = resolve_name(attr.name)
        if name == "key":
            if not ctx.loop_body:
                self._illegal(attr, "`key` only has an effect on a direct child of `@for`")
            elif isinstance(value, Shorthand):
                self._illegal(attr, "`key` needs a value", suggestion="write `key={item.id}`")
            return "key"
        if name == "ref":
            if component:
                self._illegal(attr, "`ref` is only allowed on elements")
            elif not isinstance(value, Expression) or value.reactive:
                self._illegal(attr, "`ref` must be a block", suggestion="write `ref={node_ref}`")
            return "ref"

        if isinstance(value, (Literal, Expression, Shorthand)):
            return attr.name.replace("-", "_") if component else attr.name
        raise TypeError(f"unexpected attribute value {type(value).__name__}")

    def _directive_key(self, attr: Attribute, value: Directive, *, component: bool) -> str | None:
        directive = value.directive
        if directive not in DIRECTIVES:
            # already reported while parsing
            return None

        if component and directive in _ELEMENT_ONLY:
            self._illegal(attr, f"`{directive}:` is only allowed on elements")
        if directive == "clone":
            if not component:
                self._illegal(attr, "`clone:` is only allowed on components and slots")
            if value.value is not None or not value.key.isidentifier():
                self._illegal(
                    attr,
                    "`clone:` takes a single variable name",
                    suggestion=f"write `clone:{value.key.replace('-', '_')}`",
                )
        elif directive == "bind":
            if not isinstance(value.value, Expression) or value.value.reactive:
                self._illegal(attr, f"`bind:{value.key}` must be bound to a block")
        elif directive in ("class", "style", "prop", "attr") and value.value is None:
            self._illegal(
                attr,
                f"`{directive}:{value.key}` needs a value",
                suggestion=(
                    f"write `{directive}:{value.key}={{...}}` "
                    f"or `{directive}:{{{value.key}}}`"
                ),
            )
        return f"{directive}:{value.key}"

    def _illegal(self, attr: Attribute, message: str, *, suggestion: str | None = None) -> None:
        self._diagnostics.error(
            DiagnosticKind.ILLEGAL_ATTRIBUTE, message, attr.span, suggestion=suggestion
        )


def resolve(
    doc: Document,
    diagnostics: Diagnostics,
    options: ResolveOptions | None = None,
) -> Document:
    """Convenience function: resolve a parsed Document, reporting into diagnostics."""
    result = Resolver(options, diagnostics).resolve(doc)
    logger.debug("resolved %d top-level nodes", len(result.children))
    return result
