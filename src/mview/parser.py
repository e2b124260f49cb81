"""mview parser: converts structured token trees into an AST."""

from __future__ import annotations

import ast as py_ast
import difflib
import logging

from mview.ast import (
    Attribute,
    AttributeValue,
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
from mview.errors import CompileError, DiagnosticKind, Diagnostics
from mview.lexer import Lexer
from mview.structure import Delimiter, Group, Structurer, TokenTree
from mview.tags import CONTROL_KEYWORDS, DIRECTIVES, RESERVED, TAGS, resolve_name
from mview.tokens import Position, Span, Token, TokenType, joined

logger = logging.getLogger(__name__)


class _Failure(Exception):
    """Unwinds to the enclosing child sequence after a recorded diagnostic."""


class _Stream:
    """Cursor over one level of token trees."""

    def __init__(self, trees: tuple[TokenTree, ...]) -> None:
        self._trees = trees
        self._pos = 0

    def peek(self, offset: int = 0) -> TokenTree | None:
        idx = self._pos + offset
        if idx < len(self._trees):
            return self._trees[idx]
        return None

    def advance(self) -> TokenTree:
        tree = self._trees[self._pos]
        self._pos += 1
        return tree

    def at_end(self) -> bool:
        return self._pos >= len(self._trees)

    def prev(self) -> TokenTree:
        """The previously consumed tree."""
        return self._trees[self._pos - 1]


# ---------------------------------------------------------------------------
# Tree classification helpers
# ---------------------------------------------------------------------------


def _is_punct(tree: TokenTree | None, value: str) -> bool:
    return isinstance(tree, Token) and tree.type == TokenType.PUNCT and tree.value == value


def _is_ident(tree: TokenTree | None, value: str | None = None) -> bool:
    if not isinstance(tree, Token) or tree.type != TokenType.IDENT:
        return False
    return value is None or tree.value == value


def _is_group(tree: TokenTree | None, delimiter: Delimiter) -> bool:
    return isinstance(tree, Group) and tree.delimiter == delimiter


def _is_kebab_group(group: Group) -> bool:
    """True for ``{name}`` / ``{kebab-name}``, an attribute shorthand."""
    trees = group.trees
    if not trees or not _is_ident(trees[0]):
        return False
    i = 1
    while i < len(trees):
        dash, part = trees[i], trees[i + 1] if i + 1 < len(trees) else None
        if not (_is_punct(dash, "-") and isinstance(part, Token) and joined(trees[i - 1], dash)):
            return False
        if part.type not in (TokenType.IDENT, TokenType.NUMBER) or not joined(dash, part):
            return False
        i += 2
    return True


def _is_spread_group(group: Group) -> bool:
    return bool(group.trees) and _is_punct(group.trees[0], "..")


def _snake(name: str) -> str:
    return name.replace("-", "_")


def _string_prefix(code: str) -> str:
    idx = 0
    while idx < len(code) and code[idx] not in "\"'":
        idx += 1
    return code[:idx].lower()


_LITERAL_IDENTS = frozenset({"True", "False", "None"})
_OPERATOR_WORDS = frozenset({"and", "or", "not", "in", "is", "if", "else", "lambda"})


class Parser:
    """Recursive descent parser for mview token trees."""

    def __init__(
        self,
        trees: tuple[TokenTree, ...],
        source: str,
        diagnostics: Diagnostics | None = None,
    ) -> None:
        self._trees = trees
        self._source = source
        self._diagnostics = diagnostics if diagnostics is not None else Diagnostics()

    # ------------------------------------------------------------------
    # Document level
    # ------------------------------------------------------------------

    def parse(self) -> Document:
        children = self._parse_children(self._trees)
        end = len(self._source)
        last_line = self._source.count("\n") + 1
        last_col = end - (self._source.rfind("\n") + 1) + 1
        span = Span(Position(1, 1, 0), Position(last_line, last_col, end))
        return Document(children, span)

    def _parse_children(self, trees: tuple[TokenTree, ...]) -> tuple[Node, ...]:
        stream = _Stream(trees)
        nodes: list[Node] = []
        while not stream.at_end():
            try:
                node = self._parse_child(stream)
            except _Failure:
                self._resync(stream)
                continue
            if node is not None:
                nodes.append(node)
        return tuple(nodes)

    def _resync(self, stream: _Stream) -> None:
        """Skip to just after the next ';' or child block."""
        while not stream.at_end():
            tree = stream.advance()
            if _is_punct(tree, ";") or _is_group(tree, Delimiter.BRACE):
                break

    def _parse_child(self, stream: _Stream) -> Node | None:
        tree = stream.peek()
        assert tree is not None

        if isinstance(tree, Group):
            stream.advance()
            if tree.delimiter == Delimiter.PAREN:
                return Fragment(self._parse_children(tree.trees), tree.span)
            if tree.delimiter == Delimiter.BRACKET:
                expr = self._group_expression(tree, reactive=True)
                return ExpressionBlock(expr, tree.span)
            if _is_spread_group(tree):
                raise self._fail(
                    DiagnosticKind.UNEXPECTED_TOKEN,
                    "spread attributes must follow a node name",
                    tree.span,
                )
            if not tree.trees:
                raise self._fail(
                    DiagnosticKind.UNEXPECTED_TOKEN,
                    "empty expression block",
                    tree.span,
                    suggestion="use `()` for an empty fragment",
                )
            return ExpressionBlock(self._group_expression(tree), tree.span)

        if tree.type == TokenType.STRING:
            stream.advance()
            return self._parse_text(tree)

        if tree.type == TokenType.NUMBER or (_is_ident(tree) and tree.value in _LITERAL_IDENTS):
            stream.advance()
            raise self._fail(
                DiagnosticKind.ILLEGAL_CHILDREN,
                "children do not accept literal numbers, booleans or None",
                tree.span,
                suggestion=(
                    f'write it as text ("{tree.value}") '
                    f"or wrap it in braces ({{{tree.value}}})"
                ),
            )

        if _is_punct(tree, ";"):
            stream.advance()
            return None

        nxt = stream.peek(1)

        if _is_ident(tree, "f") and _is_group(nxt, Delimiter.BRACKET) and joined(tree, nxt):
            stream.advance()
            group = stream.advance()
            assert isinstance(group, Group)
            expr = self._group_expression(group, reactive=True, fmt=True)
            return ExpressionBlock(expr, tree.span.join(group.span))

        if _is_punct(tree, "@") and _is_ident(nxt) and joined(tree, nxt):
            return self._parse_control(stream)

        if _is_punct(tree, "!") and _is_ident(nxt, "DOCTYPE") and joined(tree, nxt):
            return self._parse_doctype(stream)

        if _is_ident(tree, "slot") and _is_punct(nxt, ":") and joined(tree, nxt):
            stream.advance()
            stream.advance()
            name = stream.peek()
            if not _is_ident(name) or not joined(nxt, name):
                raise self._fail(
                    DiagnosticKind.UNEXPECTED_TOKEN,
                    "expected a slot name after `slot:`",
                    nxt.span,
                )
            return self._parse_node(stream, slot=True, start=tree.span.start)

        if _is_ident(tree):
            return self._parse_node(stream)

        raise self._fail(
            DiagnosticKind.UNEXPECTED_TOKEN,
            f"expected a node, text or expression, found `{tree.value}`",
            tree.span,
        )

    def _parse_text(self, tok: Token) -> Node:
        prefix = _string_prefix(tok.value)
        if "f" in prefix:
            return ExpressionBlock(Expression(tok.value, tok.span), tok.span)
        if "b" in prefix:
            raise self._fail(
                DiagnosticKind.ILLEGAL_CHILDREN,
                "byte strings cannot be children",
                tok.span,
            )
        try:
            value = py_ast.literal_eval(tok.value)
        except (ValueError, SyntaxError) as exc:
            raise self._fail(
                DiagnosticKind.INVALID_TOKEN, f"invalid string literal: {exc}", tok.span
            ) from exc
        return TextLiteral(value, tok.value, tok.span)

    def _parse_doctype(self, stream: _Stream) -> Element:
        bang = stream.advance()
        stream.advance()  # DOCTYPE
        kind = stream.peek()
        if not _is_ident(kind):
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                "expected a document type after `!DOCTYPE`",
                stream.prev().span,
                suggestion="write `!DOCTYPE html;`",
            )
        stream.advance()
        if _is_punct(stream.peek(), ";"):
            stream.advance()
        span = bang.span.join(stream.prev().span)
        attr = Attribute(kind.value, Shorthand(kind.span), kind.span)
        return Element("!DOCTYPE", (attr,), None, span)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _parse_node(
        self,
        stream: _Stream,
        *,
        slot: bool = False,
        start: Position | None = None,
    ) -> Element | Component:
        head = stream.advance()
        assert isinstance(head, Token)
        name, name_span = self._read_kebab(stream, head)
        is_component = name[0].isupper()

        if is_component:
            while (
                _is_punct(stream.peek(), ".")
                and joined(stream.prev(), stream.peek())
                and _is_ident(stream.peek(1))
                and joined(stream.peek(), stream.peek(1))
            ):
                stream.advance()
                seg = stream.advance()
                name += "." + seg.value
                name_span = name_span.join(seg.span)

        self._check_node_name(name, name_span, is_component, slot)

        attrs: list[Attribute] = []
        children: tuple[Node, ...] | None = None
        args: str | None = None

        while not stream.at_end():
            tree = stream.peek()

            if _is_punct(tree, ";"):
                stream.advance()
                break

            if isinstance(tree, Group) and tree.delimiter == Delimiter.BRACE:
                if _is_kebab_group(tree) or _is_spread_group(tree):
                    stream.advance()
                    attrs.append(self._parse_brace_attr(tree))
                    continue
                stream.advance()
                children = self._parse_children(tree.trees)
                break

            if isinstance(tree, Group) and tree.delimiter == Delimiter.PAREN:
                stream.advance()
                attrs.extend(self._parse_attr_list(tree))
                continue

            if _is_punct(tree, "|"):
                if not is_component:
                    raise self._fail(
                        DiagnosticKind.UNEXPECTED_TOKEN,
                        "closure arguments are only allowed on components and slots",
                        tree.span,
                    )
                args = self._parse_closure_args(stream)
                block = stream.peek()
                if not _is_group(block, Delimiter.BRACE):
                    raise self._fail(
                        DiagnosticKind.UNEXPECTED_TOKEN,
                        "expected a child block `{ ... }` after closure arguments",
                        stream.prev().span,
                    )
                stream.advance()
                children = self._parse_children(block.trees)
                break

            if _is_punct(tree, "."):
                attrs.append(self._parse_class_selector(stream))
                continue

            if isinstance(tree, Token) and tree.type == TokenType.HASH:
                attrs.append(self._parse_id_selector(stream))
                continue

            if _is_ident(tree):
                attrs.append(self._parse_attribute(stream))
                continue

            suggestion = None
            if isinstance(tree, Token) and tree.type == TokenType.STRING:
                suggestion = f"children go inside braces: `{name} {{ {tree.value} }}`"
            elif isinstance(tree, Group) and tree.delimiter == Delimiter.BRACKET:
                suggestion = "wrap reactive values as `key=[...]`, or move the child into `{ ... }`"
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                f"expected an attribute, a child block `{{ ... }}` or `;` after `{name}`",
                tree.span,
                suggestion=suggestion,
            )

        self._check_reserved(attrs)
        node_start = start if start is not None else head.span.start
        span = Span(node_start, stream.prev().span.end)
        if is_component:
            return Component(name, tuple(attrs), children, span, args=args, slot=slot)
        return Element(name, tuple(attrs), children, span)

    def _read_kebab(self, stream: _Stream, first: Token) -> tuple[str, Span]:
        """Extend an identifier already consumed with joined ``-part`` segments."""
        name = first.value
        span = first.span
        while True:
            dash, part = stream.peek(), stream.peek(1)
            if not (
                _is_punct(dash, "-")
                and joined(stream.prev(), dash)
                and isinstance(part, Token)
                and part.type in (TokenType.IDENT, TokenType.NUMBER)
                and joined(dash, part)
            ):
                break
            stream.advance()
            stream.advance()
            name += "-" + part.value
            span = span.join(part.span)
        return name, span

    def _check_node_name(self, name: str, span: Span, is_component: bool, slot: bool) -> None:
        if name.startswith("_"):
            self._diagnostics.error(
                DiagnosticKind.INVALID_NODE_NAME,
                f"invalid node name `{name}`: names cannot start with '_'",
                span,
            )
        elif is_component and "-" in name:
            camel = "".join(part[:1].upper() + part[1:] for part in name.split("-"))
            self._diagnostics.error(
                DiagnosticKind.INVALID_NODE_NAME,
                f"invalid component name `{name}`: component names cannot contain '-'",
                span,
                suggestion=f"use `{camel}`",
            )
        elif slot and not is_component:
            self._diagnostics.error(
                DiagnosticKind.INVALID_NODE_NAME,
                f"invalid slot name `{name}`: slots must be named like components",
                span,
                suggestion=f"use `slot:{name[:1].upper() + name[1:]}`",
            )
        elif not is_component and name != name.lower():
            tag = TAGS.get(name)
            if tag is None or tag.namespace != "svg":
                self._diagnostics.error(
                    DiagnosticKind.INVALID_NODE_NAME,
                    f"ambiguous node name `{name}`",
                    span,
                    suggestion=(
                        f"use `{name[:1].upper() + name[1:]}` for a component "
                        f"or `{name.lower()}` for an element"
                    ),
                )

    def _check_reserved(self, attrs: list[Attribute]) -> None:
        seen: dict[str, Attribute] = {}
        for attr in attrs:
            name = resolve_name(attr.name)
            if name not in RESERVED:
                continue
            if name in seen:
                self._diagnostics.error(
                    DiagnosticKind.DUPLICATE_RESERVED_ATTRIBUTE,
                    f"duplicate reserved attribute `{name}`",
                    attr.span,
                    seen[name].span,
                    suggestion=f"remove one of the `{name}` attributes",
                )
            else:
                seen[name] = attr

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def _parse_attr_list(self, group: Group) -> list[Attribute]:
        """Parenthesised attribute list: ``(x=1, y="z", flag)``."""
        stream = _Stream(group.trees)
        attrs: list[Attribute] = []
        while not stream.at_end():
            tree = stream.peek()
            if _is_punct(tree, ","):
                stream.advance()
            elif _is_ident(tree):
                attrs.append(self._parse_attribute(stream))
            elif isinstance(tree, Group) and (_is_kebab_group(tree) or _is_spread_group(tree)):
                stream.advance()
                attrs.append(self._parse_brace_attr(tree))
            else:
                suggestion = None
                if isinstance(tree, Token) and tree.type == TokenType.STRING:
                    suggestion = "children go inside braces `{ ... }`, not parentheses"
                raise self._fail(
                    DiagnosticKind.UNEXPECTED_TOKEN,
                    "expected an attribute",
                    tree.span,
                    suggestion=suggestion,
                )
        return attrs

    def _parse_brace_attr(self, group: Group) -> Attribute:
        if _is_spread_group(group):
            if len(group.trees) < 2:
                raise self._fail(
                    DiagnosticKind.UNEXPECTED_TOKEN,
                    "expected an expression after `..`",
                    group.span,
                )
            code, span = self._trees_code(group.trees[1:])
            return Attribute("..", Spread(code, span), group.span)
        name = self._source[group.trees[0].span.start.offset : group.trees[-1].span.end.offset]
        value = Expression(_snake(name), group.inner_span)
        return Attribute(name, value, group.span)

    def _parse_class_selector(self, stream: _Stream) -> Attribute:
        dot = stream.advance()
        ident = stream.peek()
        if not _is_ident(ident) or not joined(dot, ident):
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN, "expected a class name after '.'", dot.span
            )
        stream.advance()
        name, span = self._read_kebab(stream, ident)
        value = Directive("class", name, Literal("True", span), span)
        return Attribute("." + name, value, dot.span.join(span))

    def _parse_id_selector(self, stream: _Stream) -> Attribute:
        hash_tok = stream.advance()
        ident = stream.peek()
        if not _is_ident(ident):
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN, "expected an id after '#'", hash_tok.span
            )
        stream.advance()
        name, span = self._read_kebab(stream, ident)
        return Attribute("#" + name, Literal(f'"{name}"', span), hash_tok.span.join(span))

    def _parse_attribute(self, stream: _Stream) -> Attribute:
        key_tok = stream.advance()
        assert isinstance(key_tok, Token)
        name, name_span = self._read_kebab(stream, key_tok)

        colon = stream.peek()
        if _is_punct(colon, ":") and joined(stream.prev(), colon):
            return self._parse_directive(stream, name, name_span)

        if _is_punct(stream.peek(), "="):
            eq = stream.advance()
            value = self._parse_value(stream, name, eq)
            return Attribute(name, value, Span(name_span.start, stream.prev().span.end))

        return Attribute(name, Shorthand(name_span), name_span)

    def _parse_directive(self, stream: _Stream, directive: str, start: Span) -> Attribute:
        colon = stream.advance()
        target = stream.peek()
        value: Literal | Expression | None = None

        if isinstance(target, Group) and joined(colon, target):
            if not _is_kebab_group(target):
                raise self._fail(
                    DiagnosticKind.UNEXPECTED_TOKEN,
                    f"expected `{directive}:{{name}}`",
                    target.span,
                )
            stream.advance()
            key = self._source[target.inner_span.start.offset : target.inner_span.end.offset]
            key = key.strip()
            value = Expression(_snake(key), target.inner_span)
        elif (
            isinstance(target, Token)
            and target.type == TokenType.STRING
            and joined(colon, target)
        ):
            stream.advance()
            prefix = _string_prefix(target.value)
            key = ""
            if "b" not in prefix and "f" not in prefix:
                try:
                    key = py_ast.literal_eval(target.value)
                except (ValueError, SyntaxError) as exc:
                    raise self._fail(
                        DiagnosticKind.INVALID_TOKEN,
                        f"invalid string literal: {exc}",
                        target.span,
                    ) from exc
            if not key:
                raise self._fail(
                    DiagnosticKind.UNEXPECTED_TOKEN,
                    "directive names must be plain non-empty strings",
                    target.span,
                )
        elif _is_ident(target) and joined(colon, target):
            stream.advance()
            key, _ = self._read_kebab(stream, target)
        else:
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                f"expected a name after `{directive}:`",
                colon.span,
            )

        if value is None and _is_punct(stream.peek(), "="):
            eq = stream.advance()
            value = self._parse_value(stream, f"{directive}:{key}", eq)

        span = start.join(stream.prev().span)

        if directive not in DIRECTIVES:
            close = difflib.get_close_matches(directive, DIRECTIVES, n=1)
            self._diagnostics.error(
                DiagnosticKind.UNKNOWN_DIRECTIVE,
                f"unknown directive `{directive}:`",
                start,
                suggestion=f"did you mean `{close[0]}:`?" if close else None,
            )

        attr_value: AttributeValue
        if directive == "on":
            attr_value = EventHandler(key, value, span)
        else:
            attr_value = Directive(directive, key, value, span)
        return Attribute(f"{directive}:{key}", attr_value, span)

    def _parse_value(self, stream: _Stream, key: str, eq: Token) -> Literal | Expression:
        tree = stream.peek()
        if tree is None or _is_punct(tree, ";"):
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                f"expected a value after `{key}=`",
                eq.span,
                suggestion=f"write `{key}` alone for a boolean flag",
            )

        if isinstance(tree, Group):
            if tree.delimiter == Delimiter.PAREN:
                raise self._fail(
                    DiagnosticKind.UNEXPECTED_TOKEN,
                    "expressions must be wrapped in braces",
                    tree.span,
                    suggestion=f"write `{key}={{...}}`",
                )
            stream.advance()
            return self._group_expression(tree, reactive=tree.delimiter == Delimiter.BRACKET)

        stream.advance()

        if tree.type == TokenType.STRING:
            if "f" in _string_prefix(tree.value):
                return Expression(tree.value, tree.span)
            return Literal(tree.value, tree.span)

        if tree.type == TokenType.NUMBER:
            return Literal(tree.value, tree.span)

        if _is_punct(tree, "-"):
            num = stream.peek()
            if isinstance(num, Token) and num.type == TokenType.NUMBER and joined(tree, num):
                stream.advance()
                return Literal("-" + num.value, tree.span.join(num.span))

        if _is_ident(tree, "f"):
            group = stream.peek()
            if _is_group(group, Delimiter.BRACKET) and joined(tree, group):
                stream.advance()
                expr = self._group_expression(group, reactive=True, fmt=True)
                return Expression(expr.code, expr.span, reactive=True, fmt=True)

        if _is_ident(tree) and tree.value in _LITERAL_IDENTS:
            return Literal(tree.value, tree.span)

        if _is_ident(tree):
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                "non-literal values must be wrapped in braces",
                tree.span,
                suggestion=f"write `{key}={{{tree.value}}}`",
            )

        raise self._fail(
            DiagnosticKind.UNEXPECTED_TOKEN,
            f"expected a value after `{key}=`, found `{tree.value}`",
            tree.span,
        )

    def _parse_closure_args(self, stream: _Stream) -> str:
        bar = stream.advance()
        parts: list[TokenTree] = []
        while not stream.at_end() and not _is_punct(stream.peek(), "|"):
            parts.append(stream.advance())
        if stream.at_end():
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                "unclosed closure arguments, expected `|`",
                bar.span,
            )
        stream.advance()
        if not parts:
            return ""
        code, _ = self._trees_code(tuple(parts))
        return code

    # ------------------------------------------------------------------
    # Control blocks
    # ------------------------------------------------------------------

    def _parse_control(self, stream: _Stream) -> ControlBlock:
        at = stream.advance()
        kw = stream.advance()
        assert isinstance(kw, Token)

        if kw.value in ("elif", "else"):
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                f"`@{kw.value}` without a preceding `@if`",
                at.span.join(kw.span),
            )
        if kw.value == "if":
            return self._parse_if(stream, at)
        if kw.value == "for":
            return self._parse_for(stream, at)
        if kw.value == "match":
            return self._parse_match(stream, at)

        close = difflib.get_close_matches(kw.value, CONTROL_KEYWORDS, n=1)
        raise self._fail(
            DiagnosticKind.UNKNOWN_DIRECTIVE,
            f"unknown control block `@{kw.value}`",
            at.span.join(kw.span),
            suggestion=f"did you mean `@{close[0]}`?" if close else None,
        )

    def _parse_if(self, stream: _Stream, at: Token) -> ControlBlock:
        cond = self._parse_head_expression(stream, "@if", stream.prev())
        block = self._expect_block(stream, "@if")
        first = cond
        branches = [Branch("if", cond, self._parse_children(block.trees), at.span.join(block.span))]

        while _is_punct(stream.peek(), "@") and _is_ident(stream.peek(1)):
            kw = stream.peek(1)
            if kw.value not in ("elif", "else") or not joined(stream.peek(), kw):
                break
            branch_at = stream.advance()
            stream.advance()
            if kw.value == "elif":
                cond = self._parse_head_expression(stream, "@elif", kw)
                block = self._expect_block(stream, "@elif")
                children = self._parse_children(block.trees)
                branches.append(Branch("elif", cond, children, branch_at.span.join(block.span)))
            else:
                block = self._expect_block(stream, "@else")
                children = self._parse_children(block.trees)
                branches.append(Branch("else", None, children, branch_at.span.join(block.span)))
                break

        span = at.span.join(stream.prev().span)
        return ControlBlock(ControlKind.IF, first, None, tuple(branches), span)

    def _parse_for(self, stream: _Stream, at: Token) -> ControlBlock:
        kw = stream.prev()
        target_trees: list[TokenTree] = []
        while not stream.at_end() and not _is_ident(stream.peek(), "in"):
            if _is_group(stream.peek(), Delimiter.BRACE):
                break
            target_trees.append(stream.advance())
        if not target_trees:
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN, "expected a loop target after `@for`", kw.span
            )
        if not _is_ident(stream.peek(), "in"):
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                "expected `in` after the loop target",
                target_trees[-1].span,
                suggestion="write `@for item in items { ... }`",
            )
        in_tok = stream.advance()
        code, target_span = self._trees_code(tuple(target_trees))
        target = Expression(code, target_span)
        iterable = self._parse_head_expression(stream, "@for ... in", in_tok)
        block = self._expect_block(stream, "@for")
        body = Branch("for", None, self._parse_children(block.trees), block.span)
        span = at.span.join(block.span)
        return ControlBlock(ControlKind.FOR, iterable, target, (body,), span)

    def _parse_match(self, stream: _Stream, at: Token) -> ControlBlock:
        subject = self._parse_head_expression(stream, "@match", stream.prev())
        block = self._expect_block(stream, "@match")

        cases = _Stream(block.trees)
        branches: list[Branch] = []
        default: Branch | None = None
        # The whole @match block is consumed at this point, so errors inside
        # it are recorded without unwinding into the sibling sequence.
        try:
            while not cases.at_end():
                case_tok = cases.advance()
                if not _is_ident(case_tok, "case"):
                    raise self._fail(
                        DiagnosticKind.UNEXPECTED_TOKEN,
                        "expected `case` inside `@match`",
                        case_tok.span,
                    )
                test = self._parse_head_expression(cases, "case", case_tok)
                case_block = self._expect_block(cases, "case")
                children = self._parse_children(case_block.trees)
                span = case_tok.span.join(case_block.span)
                if default is not None:
                    self._diagnostics.error(
                        DiagnosticKind.UNEXPECTED_TOKEN,
                        "`case _` must be the last case",
                        default.span,
                    )
                if test.code == "_":
                    default = Branch("case", None, children, span)
                    branches.append(default)
                else:
                    branches.append(Branch("case", test, children, span))
        except _Failure:
            pass

        if not branches:
            self._diagnostics.error(
                DiagnosticKind.UNEXPECTED_TOKEN,
                "`@match` needs at least one `case`",
                block.span,
            )
        span = at.span.join(block.span)
        return ControlBlock(ControlKind.MATCH, subject, None, tuple(branches), span)

    def _parse_head_expression(self, stream: _Stream, what: str, before: TokenTree) -> Expression:
        """Collect trees up to the next brace group as an expression."""
        trees: list[TokenTree] = []
        while not stream.at_end() and not _is_group(stream.peek(), Delimiter.BRACE):
            trees.append(stream.advance())
        hint = "a brace group ends the expression; wrap the expression in parentheses"
        if not trees:
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                f"expected an expression after `{what}`",
                before.span,
                suggestion=hint if _is_group(stream.peek(1), Delimiter.BRACE) else None,
            )
        last = trees[-1]
        if (isinstance(last, Token) and last.type == TokenType.PUNCT) or (
            _is_ident(last) and last.value in _OPERATOR_WORDS
        ):
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                f"the expression after `{what}` is incomplete",
                last.span,
                suggestion=hint,
            )
        code, span = self._trees_code(tuple(trees))
        return Expression(code, span)

    def _expect_block(self, stream: _Stream, what: str) -> Group:
        block = stream.peek()
        if not _is_group(block, Delimiter.BRACE):
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                f"expected a block `{{ ... }}` after `{what}`",
                stream.prev().span,
            )
        stream.advance()
        return block

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _trees_code(self, trees: tuple[TokenTree, ...]) -> tuple[str, Span]:
        span = trees[0].span.join(trees[-1].span)
        return self._source[span.start.offset : span.end.offset], span

    def _group_expression(
        self, group: Group, *, reactive: bool = False, fmt: bool = False
    ) -> Expression:
        if not group.trees:
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                "expected an expression",
                group.span,
            )
        if fmt and not (
            isinstance(group.trees[0], Token) and group.trees[0].type == TokenType.STRING
        ):
            raise self._fail(
                DiagnosticKind.UNEXPECTED_TOKEN,
                "`f[...]` must start with a format string",
                group.trees[0].span,
                suggestion='write `f["{}", value]`',
            )
        code, span = self._trees_code(group.trees)
        return Expression(code, span, reactive=reactive, fmt=fmt)

    def _fail(
        self,
        kind: DiagnosticKind,
        message: str,
        span: Span,
        *,
        suggestion: str | None = None,
    ) -> _Failure:
        self._diagnostics.error(kind, message, span, suggestion=suggestion)
        return _Failure()


def parse(source: str, filename: str = "input.mview") -> Document:
    """Convenience function: parse source text and return a Document AST.

    Raises CompileError if any stage up to parsing reported a diagnostic.
    """
    diagnostics = Diagnostics()
    lexer = Lexer(source, diagnostics)
    tokens = lexer.tokenize()
    trees = None if diagnostics else Structurer(tokens, diagnostics, lexer.comments).structure()
    if trees is None:
        raise CompileError(diagnostics.items(), source, filename)
    doc = Parser(trees, source, diagnostics).parse()
    if diagnostics:
        raise CompileError(diagnostics.items(), source, filename)
    logger.debug("parsed %d top-level nodes from %s", len(doc.children), filename)
    return doc
