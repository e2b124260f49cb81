"""Command-line interface for mview."""

from __future__ import annotations

import argparse
import logging
import re
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mview.errors import CompileError

logger = logging.getLogger(__name__)

_RUNTIME_RE = re.compile(r"[^\W\d]\w*(?:\.[^\W\d]\w*)*")


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    input_file: Path | None  # None reads stdin
    output_file: Path | None
    runtime: str
    nightly: bool
    strict_spreads: bool
    check: bool
    format: bool
    debug: bool

    @property
    def filename(self) -> str:
        return str(self.input_file) if self.input_file is not None else "<stdin>"


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="mview",
        description="Compile view DSL source to a Python view-builder expression",
    )
    p.add_argument("input", help="Input .mview file, or - for stdin")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.add_argument(
        "--runtime",
        default=None,
        metavar="NAME",
        help="Name the generated code uses for the view API (default: view)",
    )
    p.add_argument(
        "--nightly",
        action="store_true",
        default=None,
        help="Emit bare children without text/into_view adaptors",
    )
    p.add_argument(
        "--strict-spreads",
        action="store_true",
        default=None,
        help="Reject named attributes written before a spread",
    )
    p.add_argument(
        "--config",
        metavar="FILE",
        help="Config file (default: auto-discover mview.toml)",
    )
    p.add_argument("--check", action="store_true", help="Only report diagnostics, write nothing")
    p.add_argument("--format", action="store_true", help="Print the source in canonical layout")
    p.add_argument("--debug", action="store_true", help="Dump AST to stderr")
    p.add_argument("-v", "--verbose", action="store_true", help="Log pipeline stages to stderr")
    return p


def load_config(config_path: Path | None, input_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else input_dir / "mview.toml"

    if not path.is_file():
        return {}

    logger.debug("loading config from %s", path)
    with open(path, "rb") as f:
        return tomllib.load(f)


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    value = config.get(name)
    return value if isinstance(value, dict) else {}


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file and CLI args into CliOptions.

    Precedence: defaults < config file < CLI flags.
    """
    input_file = None if args.input == "-" else Path(args.input)
    input_dir = input_file.parent if input_file is not None else Path(".")
    if not input_dir.parts:
        input_dir = Path(".")

    config_path = Path(args.config) if args.config else None
    try:
        config = load_config(config_path, input_dir)
    except tomllib.TOMLDecodeError as exc:
        raise argparse.ArgumentTypeError(f"invalid config file: {exc}") from exc

    codegen = _section(config, "codegen")
    resolve = _section(config, "resolve")

    # Runtime name: default < config < CLI
    runtime = "view"
    cfg_runtime = codegen.get("runtime")
    if cfg_runtime is not None:
        if not isinstance(cfg_runtime, str):
            raise argparse.ArgumentTypeError("[codegen] runtime must be a string")
        runtime = cfg_runtime
    if args.runtime is not None:
        runtime = args.runtime
    if not _RUNTIME_RE.fullmatch(runtime):
        raise argparse.ArgumentTypeError(
            f"invalid runtime name (expected a dotted name): {runtime}"
        )

    # Flags: default < config < CLI
    nightly = bool(codegen.get("nightly", False))
    if args.nightly is not None:
        nightly = args.nightly
    strict_spreads = bool(resolve.get("strict_spreads", False))
    if args.strict_spreads is not None:
        strict_spreads = args.strict_spreads

    output_file = Path(args.output) if args.output else None

    return CliOptions(
        input_file=input_file,
        output_file=output_file,
        runtime=runtime,
        nightly=nightly,
        strict_spreads=strict_spreads,
        check=args.check,
        format=args.format,
        debug=args.debug,
    )


def read_source(options: CliOptions) -> str:
    if options.input_file is None:
        return sys.stdin.read()
    return options.input_file.read_text(encoding="utf-8")


def compile_file(options: CliOptions, source: str | None = None) -> str:
    """Read and compile one view source. Raises CompileError on diagnostics."""
    from mview import expand
    from mview.codegen import CompileOptions
    from mview.debug import dump_ast
    from mview.fmt import format_document
    from mview.parser import parse
    from mview.resolve import ResolveOptions

    if source is None:
        source = read_source(options)
    filename = options.filename

    if options.format or options.debug:
        doc = parse(source, filename)
        if options.debug:
            dump_ast(doc, file=sys.stderr)
        if options.format:
            return format_document(doc)

    expansion = expand(
        source,
        filename,
        CompileOptions(runtime=options.runtime, nightly=options.nightly),
        ResolveOptions(strict_spreads=options.strict_spreads),
    )
    if expansion.code is None:
        raise CompileError(expansion.diagnostics, source, filename)
    return expansion.code + "\n"


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        options = resolve_options(args)
    except argparse.ArgumentTypeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    try:
        source = read_source(options)
    except OSError as exc:
        print(f"error: cannot read {options.filename}: {exc.strerror}", file=sys.stderr)
        return 2

    try:
        result = compile_file(options, source)
    except CompileError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    if options.check:
        return 0
    if options.output_file:
        options.output_file.write_text(result, encoding="utf-8")
    else:
        sys.stdout.write(result)

    return 0
