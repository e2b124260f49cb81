"""Host-syntax check of generated code, mapped back to DSL positions."""

from __future__ import annotations

import logging

from mview.codegen import Mapping, Output
from mview.errors import Diagnostic, DiagnosticKind
from mview.tokens import Position, Span

logger = logging.getLogger(__name__)


def verify(output: Output, source: str, filename: str = "input.mview") -> tuple[Diagnostic, ...]:
    """Compile the generated expression; report a SyntaxError as MalformedExpression.

    Only copied expression text can break the generated code, so the error
    position is translated through the source map to the DSL text it came from.
    """
    try:
        compile(output.code, filename, "eval")
    except SyntaxError as exc:
        offset = _output_offset(output.code, exc.lineno or 1, exc.offset or 1)
        mapping = output.mapping_at(offset) or _nearest(output, offset)
        logger.debug("generated code failed to compile at offset %d: %s", offset, exc.msg)
        return (_malformed(exc.msg, mapping, offset, source),)
    return ()


def _output_offset(code: str, lineno: int, column: int) -> int:
    lines = code.split("\n")
    start = sum(len(line) + 1 for line in lines[: lineno - 1])
    return min(start + column - 1, len(code))


def _nearest(output: Output, offset: int) -> Mapping | None:
    """The copied range closest to an offset outside every copied range."""
    best: Mapping | None = None
    best_distance = 0
    for m in output.mappings:
        distance = m.start - offset if offset < m.start else offset - m.end
        if best is None or distance <= best_distance:
            best, best_distance = m, distance
    return best


def position_at(source: str, offset: int) -> Position:
    """Convert a character offset in source into a Position."""
    offset = max(0, min(offset, len(source)))
    line = source.count("\n", 0, offset) + 1
    column = offset - (source.rfind("\n", 0, offset) + 1) + 1
    return Position(line, column, offset)


def _malformed(message: str, mapping: Mapping | None, offset: int, source: str) -> Diagnostic:
    if mapping is None:
        start = position_at(source, 0)
        span = Span(start, start)
    else:
        delta = min(max(offset - mapping.start, 0), mapping.end - mapping.start)
        start = position_at(source, mapping.span.start.offset + delta)
        if start.offset >= mapping.span.end.offset:
            span = mapping.span
        else:
            span = Span(start, mapping.span.end)
    return Diagnostic(
        DiagnosticKind.MALFORMED_EXPRESSION,
        f"malformed expression: {message}",
        (span,),
    )
