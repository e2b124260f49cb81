"""Tests for diagnostic formatting and collection."""

from __future__ import annotations

from mview.errors import CompileError, Diagnostic, DiagnosticKind, Diagnostics
from mview.tokens import Position, Span

K = DiagnosticKind


def _span(line: int, col: int, length: int, offset: int = 0) -> Span:
    return Span(Position(line, col, offset), Position(line, col + length, offset + length))


class TestDiagnosticFormat:
    def test_single_line(self):
        diag = Diagnostic(K.INVALID_NODE_NAME, "unknown element `dvi`", (_span(1, 1, 3),))
        assert diag.format("dvi {}", "page.mview") == (
            "error[InvalidNodeName]: unknown element `dvi`\n"
            "  --> page.mview:1:1\n"
            "  |\n"
            "1 | dvi {}\n"
            "  | ^^^"
        )

    def test_caret_offset(self):
        diag = Diagnostic(K.UNEXPECTED_TOKEN, "bad", (_span(2, 5, 2),))
        text = diag.format("div {\n    x=;\n}")
        lines = text.splitlines()
        assert lines[3] == "2 |     x=;"
        assert lines[4] == "  |     ^^"

    def test_multiline_span_underlines_to_end_of_line(self):
        span = Span(Position(1, 5, 4), Position(2, 2, 8))
        diag = Diagnostic(K.UNBALANCED_DELIMITER, "unclosed", (span,))
        assert diag.format("div {\n}").splitlines()[-1] == "  |     ^"

    def test_help_line(self):
        diag = Diagnostic(K.ILLEGAL_CHILDREN, "void", (_span(1, 1, 2),), "write `br;`")
        assert diag.format("br {}").endswith("\n  = help: write `br;`")

    def test_note_for_extra_spans(self):
        diag = Diagnostic(
            K.CONFLICTING_ATTRIBUTE,
            "conflict",
            (_span(1, 8, 6, 7), _span(1, 5, 2, 4)),
        )
        text = diag.format('div #a id="b";', "x.mview")
        assert "  = note: also at x.mview:1:5" in text

    def test_wide_gutter(self):
        source = "\n" * 11 + "p;"
        diag = Diagnostic(K.INVALID_TOKEN, "bad", (_span(12, 1, 1, 11),))
        lines = diag.format(source).splitlines()
        assert lines[1] == "   --> input.mview:12:1"
        assert lines[3] == "12 | p;"

    def test_primary_span(self):
        first, second = _span(1, 1, 1), _span(1, 3, 1)
        diag = Diagnostic(K.CONFLICTING_ATTRIBUTE, "x", (first, second))
        assert diag.span == first


class TestDiagnostics:
    def test_collects_in_order(self):
        diagnostics = Diagnostics()
        assert not diagnostics
        diagnostics.error(K.INVALID_TOKEN, "a", _span(1, 1, 1))
        diagnostics.error(K.UNEXPECTED_TOKEN, "b", _span(1, 2, 1), suggestion="fix")
        assert len(diagnostics) == 2
        assert [d.message for d in diagnostics] == ["a", "b"]
        assert diagnostics.items()[1].suggestion == "fix"

    def test_extend(self):
        diagnostics = Diagnostics()
        diagnostics.extend((Diagnostic(K.INVALID_TOKEN, "a", (_span(1, 1, 1),)),))
        assert bool(diagnostics)


class TestCompileError:
    def test_message_joins_diagnostics(self):
        diags = (
            Diagnostic(K.INVALID_TOKEN, "first", (_span(1, 1, 1),)),
            Diagnostic(K.INVALID_TOKEN, "second", (_span(1, 3, 1, 2),)),
        )
        exc = CompileError(diags, "a b", "f.mview")
        text = str(exc)
        assert text.count("error[InvalidToken]") == 2
        assert "\n\n" in text
        assert exc.diagnostics == diags

    def test_format_with_other_filename(self):
        diags = (Diagnostic(K.INVALID_TOKEN, "bad", (_span(1, 1, 1),)),)
        exc = CompileError(diags, "x")
        assert "--> input.mview:1:1" in str(exc)
        assert "--> other.mview:1:1" in exc.format("other.mview")
