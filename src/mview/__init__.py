"""mview view DSL compiler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mview.codegen import CompileOptions, Output
    from mview.errors import Diagnostic
    from mview.resolve import ResolveOptions

__version__ = "0.1.0"


@dataclass(frozen=True, slots=True)
class Expansion:
    """Result of one invocation: generated code, or the diagnostics that stopped it."""

    source: str
    filename: str
    code: str | None
    diagnostics: tuple[Diagnostic, ...]
    output: Output | None = None

    @property
    def ok(self) -> bool:
        return self.code is not None


def expand(
    source: str,
    filename: str = "input.mview",
    options: CompileOptions | None = None,
    resolve_options: ResolveOptions | None = None,
) -> Expansion:
    """Run the whole pipeline and collect every diagnostic instead of raising."""
    from mview.check import verify
    from mview.codegen import CodeGenerator
    from mview.errors import Diagnostics
    from mview.lexer import Lexer
    from mview.parser import Parser
    from mview.resolve import Resolver
    from mview.structure import Structurer

    diagnostics = Diagnostics()

    def failed() -> Expansion:
        return Expansion(source, filename, None, diagnostics.items())

    lexer = Lexer(source, diagnostics)
    tokens = lexer.tokenize()
    if diagnostics:
        return failed()
    trees = Structurer(tokens, diagnostics, lexer.comments).structure()
    if trees is None:
        return failed()

    doc = Parser(trees, source, diagnostics).parse()
    doc = Resolver(resolve_options, diagnostics).resolve(doc)
    if diagnostics:
        return failed()

    output = CodeGenerator(options).generate(doc)
    diagnostics.extend(verify(output, source, filename))
    if diagnostics:
        return failed()
    return Expansion(source, filename, output.code, (), output)


def compile(
    source: str,
    filename: str = "input.mview",
    options: CompileOptions | None = None,
    resolve_options: ResolveOptions | None = None,
) -> str:
    """Compile view DSL source to a Python expression. Raises CompileError."""
    from mview.errors import CompileError

    expansion = expand(source, filename, options, resolve_options)
    if expansion.code is None:
        raise CompileError(expansion.diagnostics, source, filename)
    return expansion.code
