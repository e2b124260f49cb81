"""Structurer: groups a flat token stream into bracket-aware token trees."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from mview.errors import CompileError, DiagnosticKind, Diagnostics
from mview.lexer import Lexer
from mview.tokens import OPENERS, Span, Token, TokenType

logger = logging.getLogger(__name__)


class Delimiter(Enum):
    PAREN = "("
    BRACKET = "["
    BRACE = "{"

    @property
    def closer(self) -> str:
        return OPENERS[self.value]


@dataclass(frozen=True, slots=True)
class Group:
    """A delimited group of token trees, e.g. ``{ ... }``."""

    delimiter: Delimiter
    trees: tuple[TokenTree, ...]
    open: Token
    close: Token

    @property
    def span(self) -> Span:
        return Span(self.open.span.start, self.close.span.end)

    @property
    def inner_span(self) -> Span:
        """Span strictly between the delimiters."""
        return Span(self.open.span.end, self.close.span.start)


TokenTree = Token | Group


class Structurer:
    """Match delimiters and build token trees. No DSL semantics here."""

    def __init__(
        self,
        tokens: list[Token],
        diagnostics: Diagnostics | None = None,
        comments: list[Token] | None = None,
    ) -> None:
        self._tokens = tokens
        self._diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self._comments = comments or []

    def structure(self) -> tuple[TokenTree, ...] | None:
        """Return the top-level token trees, or None after an UnbalancedDelimiter."""
        # each frame: (opening token, trees collected so far)
        stack: list[tuple[Token, list[TokenTree]]] = []
        current: list[TokenTree] = []

        for tok in self._tokens:
            if tok.type == TokenType.EOF:
                break

            if tok.type == TokenType.OPEN:
                stack.append((tok, current))
                current = []
                continue

            if tok.type == TokenType.CLOSE:
                if not stack:
                    self._diagnostics.error(
                        DiagnosticKind.UNBALANCED_DELIMITER,
                        f"unexpected closing '{tok.value}' with no matching opener",
                        tok.span,
                    )
                    return None
                opener, parent = stack.pop()
                delimiter = Delimiter(opener.value)
                if tok.value != delimiter.closer:
                    self._diagnostics.error(
                        DiagnosticKind.UNBALANCED_DELIMITER,
                        "mismatched closing delimiter: "
                        f"'{opener.value}' is closed by '{tok.value}'",
                        opener.span,
                        suggestion=f"close it with '{delimiter.closer}'",
                    )
                    return None
                parent.append(Group(delimiter, tuple(current), opener, tok))
                current = parent
                continue

            current.append(tok)

        if stack:
            opener, _ = stack[-1]
            closer = Delimiter(opener.value).closer
            spans = [opener.span]
            suggestion = f"add a matching '{closer}'"
            comment = self._swallowing_comment(opener, closer)
            if comment is not None:
                spans.append(comment.span)
                column = comment.span.start.column + comment.value.index(closer)
                suggestion = (
                    f"the '{closer}' at {comment.span.start.line}:{column} is inside "
                    "a `#` comment, which runs to the end of the line"
                )
            self._diagnostics.error(
                DiagnosticKind.UNBALANCED_DELIMITER,
                f"unclosed delimiter '{opener.value}'",
                *spans,
                suggestion=suggestion,
            )
            return None

        logger.debug("structured %d top-level trees", len(current))
        return tuple(current)

    def _swallowing_comment(self, opener: Token, closer: str) -> Token | None:
        """First comment after *opener* whose text contains *closer*."""
        for comment in self._comments:
            if comment.span.start.offset > opener.span.start.offset and closer in comment.value:
                return comment
        return None


def structure(source: str, filename: str = "input.mview") -> tuple[TokenTree, ...]:
    """Convenience function: tokenize and structure source text.

    Raises CompileError on lexing or delimiter errors.
    """
    diagnostics = Diagnostics()
    lexer = Lexer(source, diagnostics)
    tokens = lexer.tokenize()
    trees = None if diagnostics else Structurer(tokens, diagnostics, lexer.comments).structure()
    if diagnostics or trees is None:
        raise CompileError(diagnostics.items(), source, filename)
    return trees
