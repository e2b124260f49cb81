"""Minimal LSP server for mview, publishing diagnostics only."""

from __future__ import annotations

from lsprotocol.types import (
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    Diagnostic,
    DiagnosticRelatedInformation,
    DiagnosticSeverity,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Location,
    Position,
    PublishDiagnosticsParams,
    Range,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer

from mview import __version__, expand
from mview.errors import Diagnostic as MviewDiagnostic
from mview.tokens import Span

server = LanguageServer("mview-lsp", __version__, text_document_sync_kind=TextDocumentSyncKind.Full)


def _range(span: Span) -> Range:
    # 1-based → 0-based
    return Range(
        start=Position(line=span.start.line - 1, character=span.start.column - 1),
        end=Position(line=span.end.line - 1, character=span.end.column - 1),
    )


def to_lsp(diag: MviewDiagnostic, uri: str) -> Diagnostic:
    """Convert one compile diagnostic to its LSP form."""
    message = diag.message
    if diag.suggestion:
        message += f"\nhelp: {diag.suggestion}"
    related = [
        DiagnosticRelatedInformation(
            location=Location(uri=uri, range=_range(span)),
            message="also here",
        )
        for span in diag.spans[1:]
    ]
    return Diagnostic(
        range=_range(diag.span),
        message=message,
        severity=DiagnosticSeverity.Error,
        code=diag.kind.value,
        source="mview",
        related_information=related or None,
    )


def _validate(ls: LanguageServer, uri: str) -> None:
    """Run the mview pipeline and publish all of its diagnostics."""
    doc = ls.workspace.get_text_document(uri)
    filename = uri.rsplit("/", 1)[-1] if "/" in uri else uri
    expansion = expand(doc.source, filename)
    diagnostics = [to_lsp(d, uri) for d in expansion.diagnostics]
    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
    )


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: LanguageServer, params: DidOpenTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: LanguageServer, params: DidChangeTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


def main() -> None:
    server.start_io()
