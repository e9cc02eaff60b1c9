"""
Command-line front end for openscad_transpiler
"""
from __future__ import annotations

import logging
import sys

import click

from .errors import OpenSCADSyntaxError, TranspileError
from .parser import parse
from .transpiler import DEFAULT_SEGMENTS, TranspileOptions, transpile
from .ast import ast_to_json, ast_to_yaml


@click.command
@click.option(
    "-i",
    "--input",
    "infile",
    type=click.File("r", encoding="utf-8"),
    default="-",
    help="OpenSCAD source file (default: stdin).",
)
@click.option(
    "-o",
    "--output",
    "outfile",
    type=click.File("w", encoding="utf-8"),
    default="-",
    help="Output file (default: stdout).",
)
@click.option("--fn", "default_fn", type=int, default=DEFAULT_SEGMENTS, show_default=True,
              help="Segment count used until the program assigns $fn.")
@click.option("--emit", type=click.Choice(["python", "json", "yaml"]), default="python",
              show_default=True, help="Emit the generated code or the serialized AST.")
@click.option("-d", "--debug", is_flag=True, help="Log debug messages to stderr.")
def main(infile, outfile, default_fn, emit, debug):
    "compile OpenSCAD to CSG runtime calls"
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
        stream=sys.stderr,
    )

    source = infile.read()
    try:
        program = parse(source)
        if emit == "json":
            result = ast_to_json(program)
        elif emit == "yaml":
            result = ast_to_yaml(program)
        else:
            result = transpile(program, TranspileOptions(default_fn=default_fn))
    except OpenSCADSyntaxError as e:
        click.echo(e.to_retry_context(), err=True)
        sys.exit(1)
    except TranspileError as e:
        location = f" at {e.position}" if e.position is not None else ""
        click.echo(f"Transpile Error{location}: {e.message}", err=True)
        sys.exit(1)

    outfile.write(result)
    if not result.endswith("\n"):
        outfile.write("\n")


if __name__ == "__main__":
    main()
