"""Diagnostics: structured compile errors with formatted source context."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from mview.tokens import Span


class DiagnosticKind(Enum):
    UNBALANCED_DELIMITER = "UnbalancedDelimiter"
    INVALID_NODE_NAME = "InvalidNodeName"
    DUPLICATE_RESERVED_ATTRIBUTE = "DuplicateReservedAttribute"
    CONFLICTING_ATTRIBUTE = "ConflictingAttribute"
    ILLEGAL_CHILDREN = "IllegalChildren"
    UNKNOWN_DIRECTIVE = "UnknownDirective"
    MALFORMED_EXPRESSION = "MalformedExpression"
    INVALID_TOKEN = "InvalidToken"
    UNEXPECTED_TOKEN = "UnexpectedToken"
    ILLEGAL_ATTRIBUTE = "IllegalAttribute"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A single compile-time error. The first span is the primary one."""

    kind: DiagnosticKind
    message: str
    spans: tuple[Span, ...]
    suggestion: str | None = None

    @property
    def span(self) -> Span:
        return self.spans[0]

    def format(self, source: str, filename: str = "input.mview") -> str:
        lines = source.splitlines(keepends=True)
        line_idx = self.span.start.line - 1
        col = self.span.start.column

        if 0 <= line_idx < len(lines):
            source_line = lines[line_idx].rstrip("\n").rstrip("\r")
        else:
            source_line = ""

        # Underline the full span when on one line, otherwise to end of line
        if self.span.end.line == self.span.start.line:
            underline_len = max(1, self.span.end.column - col)
        else:
            underline_len = max(1, len(source_line) - col + 1)

        pad = " " * (col - 1)
        carets = "^" * underline_len

        line_num = str(self.span.start.line)
        gutter_width = len(line_num) + 1

        blank_gutter = " " * gutter_width + "|"
        line_gutter = f"{line_num:>{gutter_width - 1}} |"

        result = (
            f"error[{self.kind.value}]: {self.message}\n"
            f"{' ' * gutter_width}--> {filename}:{self.span.start.line}:{col}\n"
            f"{blank_gutter}\n"
            f"{line_gutter} {source_line}\n"
            f"{blank_gutter} {pad}{carets}"
        )
        for extra in self.spans[1:]:
            where = f"{filename}:{extra.start.line}:{extra.start.column}"
            result += f"\n{' ' * gutter_width}= note: also at {where}"
        if self.suggestion:
            result += f"\n{' ' * gutter_width}= help: {self.suggestion}"
        return result


class Diagnostics:
    """Ordered per-invocation collection of diagnostics."""

    def __init__(self) -> None:
        self._items: list[Diagnostic] = []

    def error(
        self,
        kind: DiagnosticKind,
        message: str,
        *spans: Span,
        suggestion: str | None = None,
    ) -> Diagnostic:
        diag = Diagnostic(kind, message, tuple(spans), suggestion)
        self._items.append(diag)
        return diag

    def extend(self, diagnostics: list[Diagnostic] | tuple[Diagnostic, ...]) -> None:
        self._items.extend(diagnostics)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def items(self) -> tuple[Diagnostic, ...]:
        return tuple(self._items)


class CompileError(Exception):
    """Raised by the API entry points when an invocation produced diagnostics."""

    def __init__(
        self,
        diagnostics: tuple[Diagnostic, ...],
        source: str,
        filename: str = "input.mview",
    ) -> None:
        self.diagnostics = diagnostics
        self.source = source
        self.filename = filename
        super().__init__(self.format())

    def format(self, filename: str | None = None) -> str:
        name = filename if filename is not None else self.filename
        return "\n\n".join(d.format(self.source, name) for d in self.diagnostics)
