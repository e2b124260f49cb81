"""mview lexer: converts source text into a flat token stream."""

from __future__ import annotations

import logging
import re

from mview.errors import CompileError, DiagnosticKind, Diagnostics
from mview.tokens import (
    CLOSERS,
    OPENERS,
    PUNCTUATION,
    STRING_PREFIXES,
    Position,
    Span,
    Token,
    TokenType,
    is_ident_char,
    is_ident_start,
)

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(
    r"""
    0[xX](?:_?[0-9a-fA-F])+
    | 0[oO](?:_?[0-7])+
    | 0[bB](?:_?[01])+
    | (?:
        \d(?:_?\d)*(?:\.(?:\d(?:_?\d)*)?)?
        | \.\d(?:_?\d)*
      )
      (?:[eE][+-]?\d(?:_?\d)*)?
      [jJ]?
    """,
    re.VERBOSE,
)


class _Abort(Exception):
    """Stops lexing after the first recorded diagnostic."""


class Lexer:
    """Tokenize mview source text into a stream of Token objects."""

    def __init__(self, source: str, diagnostics: Diagnostics | None = None) -> None:
        self._source = source
        self._diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self._pos = 0
        self._line = 1
        self._col = 1
        self._tokens: list[Token] = []
        self.comments: list[Token] = []

    def tokenize(self) -> list[Token]:
        """Tokenize the full source and return the token list.

        On the first lexing error a diagnostic is recorded and the tokens
        collected so far are returned, terminated by EOF.
        """
        try:
            while self._pos < len(self._source):
                self._lex_one()
        except _Abort:
            logger.debug("lexing stopped at offset %d", self._pos)

        self._emit(TokenType.EOF, "", self._current_pos())
        return self._tokens

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    def _current_pos(self) -> Position:
        return Position(self._line, self._col, self._pos)

    def _peek(self, offset: int = 0) -> str:
        idx = self._pos + offset
        if idx < len(self._source):
            return self._source[idx]
        return ""

    def _advance(self, count: int = 1) -> str:
        start = self._pos
        for _ in range(count):
            ch = self._source[self._pos]
            self._pos += 1
            if ch == "\n":
                self._line += 1
                self._col = 1
            else:
                self._col += 1
        return self._source[start : self._pos]

    def _emit(self, tt: TokenType, value: str, start: Position) -> Token:
        tok = Token(tt, value, Span(start, self._current_pos()))
        self._tokens.append(tok)
        return tok

    def _error(self, message: str, start: Position | None = None) -> _Abort:
        if start is None:
            start = self._current_pos()
        end = self._current_pos()
        if end.offset == start.offset and self._pos < len(self._source):
            end = Position(start.line, start.column + 1, start.offset + 1)
        self._diagnostics.error(DiagnosticKind.INVALID_TOKEN, message, Span(start, end))
        return _Abort()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _lex_one(self) -> None:
        ch = self._peek()

        if ch == "\0":
            raise self._error("NUL character in source")

        if ch in " \t\r\n\f":
            self._advance()
            return

        if ch == "\\" and self._peek(1) == "\n":
            # explicit line continuation
            self._advance(2)
            return

        if ch == "#":
            if is_ident_start(self._peek(1)):
                start = self._current_pos()
                self._advance()
                self._emit(TokenType.HASH, "#", start)
            else:
                self._skip_comment()
            return

        if ch in "\"'":
            self._lex_string(self._current_pos(), "")
            return

        if is_ident_start(ch):
            self._lex_identifier()
            return

        if ch.isdigit() or (ch == "." and self._peek(1).isdigit()):
            self._lex_number()
            return

        if ch in OPENERS:
            start = self._current_pos()
            self._advance()
            self._emit(TokenType.OPEN, ch, start)
            return

        if ch in CLOSERS:
            start = self._current_pos()
            self._advance()
            self._emit(TokenType.CLOSE, ch, start)
            return

        for punct in PUNCTUATION:
            if self._source.startswith(punct, self._pos):
                start = self._current_pos()
                self._advance(len(punct))
                self._emit(TokenType.PUNCT, punct, start)
                return

        raise self._error(f"unexpected character {ch!r}")

    def _skip_comment(self) -> None:
        start = self._current_pos()
        begin = self._pos
        while self._pos < len(self._source) and self._peek() != "\n":
            self._advance()
        text = self._source[begin : self._pos]
        self.comments.append(Token(TokenType.COMMENT, text, Span(start, self._current_pos())))

    # ------------------------------------------------------------------
    # Identifiers and numbers
    # ------------------------------------------------------------------

    def _lex_identifier(self) -> None:
        start = self._current_pos()
        length = 1
        while is_ident_char(self._peek(length)):
            length += 1
        word = self._source[self._pos : self._pos + length]

        # String prefixes: r"..", b'..', f"""..""" and friends
        quote = self._peek(length)
        if word.lower() in STRING_PREFIXES and quote and quote in "\"'":
            self._advance(length)
            self._lex_string(start, word)
            return

        self._advance(length)
        self._emit(TokenType.IDENT, word, start)

    def _lex_number(self) -> None:
        start = self._current_pos()
        match = _NUMBER_RE.match(self._source, self._pos)
        assert match is not None
        self._advance(match.end() - match.start())
        self._emit(TokenType.NUMBER, match.group(), start)

    # ------------------------------------------------------------------
    # Strings
    # ------------------------------------------------------------------

    def _lex_string(self, start: Position, prefix: str) -> None:
        """Lex a Python string literal; the prefix (if any) is already consumed."""
        quote = self._peek()
        triple = self._peek(1) == quote and self._peek(2) == quote
        delim = quote * 3 if triple else quote
        self._advance(len(delim))

        while True:
            if self._pos >= len(self._source):
                raise self._error("unterminated string literal", start)
            ch = self._peek()
            if ch == "\\":
                if self._pos + 1 >= len(self._source):
                    raise self._error("unterminated string literal", start)
                self._advance(2)
                continue
            if ch == "\n" and not triple:
                raise self._error("unterminated string literal", start)
            if self._source.startswith(delim, self._pos):
                self._advance(len(delim))
                break
            self._advance()

        self._emit(TokenType.STRING, self._source[start.offset : self._pos], start)


def tokenize(source: str, filename: str = "input.mview") -> list[Token]:
    """Convenience function: tokenize source text and return the token list.

    Raises CompileError if the source cannot be tokenized.
    """
    diagnostics = Diagnostics()
    tokens = Lexer(source, diagnostics).tokenize()
    if diagnostics:
        raise CompileError(diagnostics.items(), source, filename)
    return tokens
