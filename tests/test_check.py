"""Tests for host-syntax checking of copied expressions."""

from __future__ import annotations

from mview import expand
from mview.check import position_at, verify
from mview.codegen import Mapping, Output
from mview.errors import DiagnosticKind
from mview.tokens import Position, Span


class TestMalformedExpression:
    def test_reported_through_pipeline(self):
        expansion = expand("div { {x +} }")
        assert expansion.code is None
        (diag,) = expansion.diagnostics
        assert diag.kind == DiagnosticKind.MALFORMED_EXPRESSION
        assert diag.message.startswith("malformed expression:")

    def test_points_at_dsl_line(self):
        expansion = expand("div {\n    {a +}\n}")
        (diag,) = expansion.diagnostics
        assert diag.span.start.line == 2

    def test_attribute_value(self):
        expansion = expand('input value={name =};')
        (diag,) = expansion.diagnostics
        assert diag.kind == DiagnosticKind.MALFORMED_EXPRESSION
        assert diag.span.start.line == 1

    def test_bad_loop_target(self):
        expansion = expand("@for 1 in xs { {x} }")
        assert [d.kind for d in expansion.diagnostics] == [DiagnosticKind.MALFORMED_EXPRESSION]

    def test_valid_code_has_no_diagnostics(self):
        expansion = expand("div { {a + b} }")
        assert expansion.ok
        assert verify(expansion.output, expansion.source) == ()


class TestVerify:
    def test_mapping_translates_offset(self):
        source = "{oops(}"
        span = Span(Position(1, 2, 1), Position(1, 7, 6))
        output = Output("f(oops()", (Mapping(2, 7, span),))
        (diag,) = verify(output, source)
        assert diag.kind == DiagnosticKind.MALFORMED_EXPRESSION
        assert diag.span.start.line == 1

    def test_no_mappings_points_at_start(self):
        (diag,) = verify(Output("(", ()), "x")
        assert diag.span.start.offset == 0


class TestPositionAt:
    def test_first_line(self):
        assert position_at("abc", 2) == Position(1, 3, 2)

    def test_later_line(self):
        assert position_at("ab\ncd", 4) == Position(2, 2, 4)

    def test_clamped(self):
        assert position_at("ab", 10) == Position(1, 3, 2)
