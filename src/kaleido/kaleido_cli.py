"""
Kaleido CLI Entrypoint.

This module provides the command-line interface for compiling Kaleido source.
It supports IR output, JIT execution, AST dumps, and interactive REPL mode.

Features:
    - Read source from `.kal`/`.ks` files or inline strings.
    - Lex, parse, and lower every top-level construct to LLVM IR.
    - Print or write the IR of every defined function.
    - Optionally JIT-execute top-level expressions.
    - Dump the parsed AST as JSON.
    - Load a custom operator precedence table from JSON.
    - Launch an interactive REPL.

Example usage:
    kaleido prog.kal
    kaleido -s "def add(a b) a+b; add(3, 4)" -e
    kaleido prog.kal -o prog.ll
    kaleido --repl --verbose

Functions:
    run_kaleido(source: str, is_string: bool = False, ...) -> Session | None:
        Executes the full pipeline (lex → parse → codegen → output/exec).

    main() -> None:
        Parses CLI arguments and invokes the appropriate action.
"""

import argparse
import json
import sys

from kaleido.kaleido_config import ConfigError, PrecedenceTable
from kaleido.kaleido_jit import JITEngine
from kaleido.kaleido_lexer import CharacterStream, Lexer
from kaleido.kaleido_parser import Parser
from kaleido.kaleido_repl import Session, start_repl

SOURCE_EXTENSIONS = (".kal", ".ks")


def load_precedence(path: str | None) -> PrecedenceTable:
    table = PrecedenceTable.from_defaults()
    if path:
        table.load_from_json(path)
    return table


def run_kaleido(
    source: str,
    is_string: bool = False,
    out: str | None = None,
    execute: bool = False,
    pretty: bool = False,
    verbose: bool = False,
    ast: bool = False,
    precedence: PrecedenceTable | None = None,
) -> Session | None:
    """
    Run the Kaleido toolchain over one source.

    Args:
        source (str): Kaleido source code or path to a `.kal`/`.ks` file.
        is_string (bool): If True, treats `source` as raw code. Defaults to False.
        out (str | None): Optional path to write the module IR (every registered
            function, then every top-level expression wrapper). If None, prints to stdout.
        execute (bool): If True, JIT-executes top-level expressions. Defaults to False.
        pretty (bool): If True, prints banners around sections. Defaults to False.
        verbose (bool): If True, dumps the IR of each construct as it compiles.
        ast (bool): If True, prints the parsed AST as JSON and stops.
        precedence (PrecedenceTable | None): Operator table; defaults if None.

    Returns:
        Session | None: The finished session, or None in AST mode.

    Raises:
        ValueError: If `is_string` is False and the source has an unknown extension.
        SyntaxError: In AST mode, on the first parse error.
    """
    if not is_string and not source.endswith(SOURCE_EXTENSIONS):
        raise ValueError("Only .kal and .ks files are supported.")
    # 1. Read source
    if not is_string:
        with open(source, encoding="utf-8") as f:
            source = f.read()

    # 2. AST mode
    if ast:
        parser = Parser(Lexer(CharacterStream(source)), precedence)
        nodes = parser.parse()
        print(json.dumps([node.to_dict() for node in nodes], indent=2))
        return None

    # 3. Compile (and run)
    jit = JITEngine() if execute else None
    if pretty and execute:
        print("<<< OUTPUT >>>")
    session = Session(CharacterStream(source), jit=jit, precedence=precedence, verbose=verbose)
    session.run()

    # 4. Output module
    code = session.dump_module()
    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(code + "\n")
        if pretty:
            print(f"(wrote to {out})")
    elif pretty:
        banner = "=" * 20
        print(f"{banner}\nLLVM IR\n{banner}\n{code}\n{banner}\n")
    elif not execute:
        print(code)
    return session


def main() -> None:
    """
    Entry point for the Kaleido CLI.

    - Launches the REPL if no arguments are passed or `--repl` is specified.
    - Otherwise, runs the full toolchain over the given source.

    Supported flags:
        - `-s`, `--string`: Interpret source as a raw string instead of a file path.
        - `-o`, `--out`: Write the module IR to a file.
        - `-e`, `--exec`: JIT-execute top-level expressions.
        - `-p`, `--pretty`: Show banners around output sections.
        - `--ast`: Print the parsed AST as JSON.
        - `--precedence`: JSON file of operator precedences.
        - `--repl`: Launch the interactive REPL.
        - `--verbose`: Dump IR for every construct.
        - `--dump-module`: In the REPL, print all IR on exit.
    """
    if len(sys.argv) == 1:
        start_repl()
        return
    parser = argparse.ArgumentParser(prog="kaleido")
    parser.add_argument("source", nargs="?", help="Filename or raw source (with -s)")
    parser.add_argument(
        "-s", "--string", action="store_true", help="Interpret source as literal string"
    )
    parser.add_argument("-o", "--out", metavar="OUTFILE", help="Write module IR to file")
    parser.add_argument(
        "-e",
        "--exec",
        dest="execute",
        action="store_true",
        help="JIT-execute top-level expressions",
    )
    parser.add_argument(
        "-p", "--pretty", action="store_true", help="Show output with banners"
    )
    parser.add_argument("--ast", action="store_true", help="Print the AST as JSON")
    parser.add_argument(
        "--precedence", metavar="JSON", help="Operator precedence table (JSON object)"
    )
    parser.add_argument(
        "--repl",
        action="store_true",
        help="Launch interactive REPL instead of compiling",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Dump IR for every construct"
    )
    parser.add_argument(
        "--dump-module", action="store_true", help="Print all IR when the REPL exits"
    )

    args = parser.parse_args()

    try:
        precedence = load_precedence(args.precedence)
    except ConfigError as e:
        print(f"[error] >>> {e}", file=sys.stderr)
        for problem in e.problems:
            print(f" - {problem}", file=sys.stderr)
        sys.exit(2)

    if args.repl or args.source is None:
        start_repl(
            precedence=precedence, verbose=args.verbose, dump_module=args.dump_module
        )
        return
    try:
        run_kaleido(
            source=args.source,
            is_string=args.string,
            out=args.out,
            execute=args.execute,
            pretty=args.pretty,
            verbose=args.verbose,
            ast=args.ast,
            precedence=precedence,
        )
    except (OSError, ValueError, SyntaxError) as e:
        print(f"[error] >>> {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__" and not any("pytest" in arg for arg in sys.argv):
    main()
