"""
CLI entry point for midlgen.

Usage:
    python3 -m tools.midlgen idl/shobjidl.idl --outdir gen/
    python3 -m tools.midlgen idl/shobjidl.idl --outdir gen/ --package shell --config midlgen.yaml
"""

import argparse
import os
import re
import sys

from .config import GeneratorConfig, ValidationError, load_config
from .emitter import GoEmitter
from .errors import FormatError, GenerationError
from .gofmt import format_source
from .lexer import tokenize
from .parser import Parser


def package_name(path: str) -> str:
    """Derive a Go package name from an IDL file name."""
    stem = os.path.splitext(os.path.basename(path))[0].lower()
    name = re.sub(r"\W", "_", stem)
    if not name or name[0].isdigit():
        name = "idl_" + name
    return name


def main(argv=None):
    parser = argparse.ArgumentParser(description="MIDL to Go COM binding generator")
    parser.add_argument("idl", help="Input .idl file")
    parser.add_argument("--outdir", required=True, help="Output directory")
    parser.add_argument("--package", help="Go package name (default: IDL file name)")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--no-format", action="store_true",
                        help="Write the generated code without running gofmt")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config) if args.config else GeneratorConfig()
    except (OSError, ValidationError) as e:
        print(f"error: {args.config}: {e}", file=sys.stderr)
        sys.exit(1)

    # Undecodable bytes survive as lone surrogates and fail the UTF-16 check.
    try:
        with open(args.idl, encoding="utf-8", errors="surrogateescape") as f:
            text = f.read()
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        idl = Parser(tokenize(text)).parse()
    except SyntaxError as e:
        print(f"error: {args.idl}: {e}", file=sys.stderr)
        sys.exit(1)

    package = args.package or config.package or package_name(args.idl)
    emitter = GoEmitter(package, mapper=config.type_mapper(),
                        base_interface=config.base_interface,
                        source_name=os.path.basename(args.idl))
    try:
        code = emitter.emit_file(idl)
        if not args.no_format:
            code = format_source(code, config.gofmt)
    except FormatError as e:
        print(f"error: {e}", file=sys.stderr)
        print(e.raw, file=sys.stderr)
        sys.exit(1)
    except GenerationError as e:
        print(f"error: {args.idl}: {e}", file=sys.stderr)
        sys.exit(1)

    os.makedirs(args.outdir, exist_ok=True)
    stem = os.path.splitext(os.path.basename(args.idl))[0]
    path = os.path.join(args.outdir, f"{stem}.go")
    with open(path, "w") as f:
        f.write(code)
    print(f"  wrote {path}")

    print(f"\nGenerated {len(emitter.interfaces)} interface(s) "
          f"for package '{package}'")


if __name__ == "__main__":
    main()
