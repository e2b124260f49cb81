"""Tests for the LSP server: diagnostic publishing and conversion."""

from __future__ import annotations

import pytest
from lsprotocol.types import (
    DiagnosticSeverity,
    PublishDiagnosticsParams,
    TextDocumentItem,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer
from pygls.workspace import Workspace

from mview.errors import Diagnostic, DiagnosticKind
from mview.lsp import _validate, to_lsp
from mview.tokens import Position, Span

URI = "file:///test.mview"


@pytest.fixture
def lsp_env():
    """Create a LanguageServer with an initialized workspace and captured diagnostics."""
    ls = LanguageServer("test", "v0", text_document_sync_kind=TextDocumentSyncKind.Full)
    ws = Workspace(None)
    ls.protocol._workspace = ws

    published: list[PublishDiagnosticsParams] = []
    ls.text_document_publish_diagnostics = lambda params: published.append(params)

    def put(source: str, uri: str = URI) -> None:
        ws.put_text_document(
            TextDocumentItem(uri=uri, language_id="mview", version=0, text=source)
        )

    return ls, published, put


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class TestPublish:
    def test_clean_document(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put('div { "hi" }')
        _validate(ls, URI)

        assert len(published) == 1
        assert published[0].uri == URI
        assert published[0].diagnostics == []

    def test_unclosed_brace(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("div {")
        _validate(ls, URI)

        (d,) = published[0].diagnostics
        assert d.severity == DiagnosticSeverity.Error
        assert d.code == "UnbalancedDelimiter"
        assert d.source == "mview"
        # the brace is at column 5 (1-based) -> character 4 (0-based)
        assert d.range.start.line == 0
        assert d.range.start.character == 4

    def test_recovered_errors_all_published(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("input value=; span {} input max=;")
        _validate(ls, URI)

        diags = published[0].diagnostics
        assert [d.code for d in diags] == ["UnexpectedToken", "UnexpectedToken"]
        assert diags[0].range.start.character < diags[1].range.start.character

    def test_later_line(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("div {\n  _x;\n}")
        _validate(ls, URI)

        (d,) = published[0].diagnostics
        assert d.code == "InvalidNodeName"
        assert d.range.start.line == 1
        assert d.range.start.character == 2

    def test_resolver_errors(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put('br { "x" }')
        _validate(ls, URI)

        (d,) = published[0].diagnostics
        assert d.code == "IllegalChildren"
        assert "help: write `br;`" in d.message

    def test_republish_after_fix(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("div {")
        _validate(ls, URI)
        put("div {}")
        _validate(ls, URI)

        assert len(published) == 2
        assert published[1].diagnostics == []


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


class TestToLsp:
    def test_related_information(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put('div #a id="b";')
        _validate(ls, URI)

        (d,) = published[0].diagnostics
        assert d.code == "ConflictingAttribute"
        (related,) = d.related_information
        assert related.location.uri == URI
        assert related.location.range.start.character == 4

    def test_message_without_suggestion(self) -> None:
        span = Span(Position(1, 1, 0), Position(1, 4, 3))
        diag = Diagnostic(DiagnosticKind.INVALID_TOKEN, "bad token", (span,))
        converted = to_lsp(diag, URI)
        assert converted.message == "bad token"
        assert converted.related_information is None
        assert converted.range.end.character == 3
