"""
Top-level driver and interactive REPL for Kaleido.

`Session` repeatedly parses one top-level construct, lowers it to IR, and
optionally runs it through the JIT. Every failure is reported and abandons
only the construct that caused it; the session keeps going until EOF.

Output conventions:
    - Status lines and IR dumps go to `diag` (stderr by default).
    - Evaluated expression values go to `out` (stdout by default).
    - Errors are tagged `[error] >>>`.
"""

import sys
from collections.abc import Callable
from typing import TextIO

from kaleido.kaleido_ast import TopLevel
from kaleido.kaleido_codegen import CodeGenerator, CodegenError, CompiledUnit
from kaleido.kaleido_config import PrecedenceTable
from kaleido.kaleido_constants import DEF, EOF, EXTERN
from kaleido.kaleido_jit import JITEngine, JITError
from kaleido.kaleido_lexer import CharSource, ConsoleStream, Lexer
from kaleido.kaleido_parser import Parser


class Session:
    """One compile-and-run session over a single character source.

    Attributes:
        parser (Parser): Parser pulling tokens from the session's Lexer.
        codegen (CodeGenerator): Owns the function registry for the session.
        jit (JITEngine | None): Runs expressions when present.
        verbose (bool): Dump the IR of every successful construct.
        units (list[CompiledUnit]): Every construct that compiled.
        results (list[float]): Every value an expression evaluated to.
        errors (int): Number of constructs that failed.
    """

    def __init__(
        self,
        stream: CharSource,
        jit: JITEngine | None = None,
        precedence: PrecedenceTable | None = None,
        verbose: bool = False,
        out: TextIO | None = None,
        diag: TextIO | None = None,
    ) -> None:
        self.parser = Parser(Lexer(stream), precedence)
        self.codegen = CodeGenerator()
        self.jit = jit
        self.verbose = verbose
        self.out = out if out is not None else sys.stdout
        self.diag = diag if diag is not None else sys.stderr
        self.units: list[CompiledUnit] = []
        self.results: list[float] = []
        self.errors = 0

    def report_error(self, error: Exception) -> None:
        self.errors += 1
        print(f"[error] >>> {error}", file=self.diag)

    def _compile(self, node: TopLevel, label: str) -> CompiledUnit | None:
        try:
            unit = self.codegen.compile(node)
        except CodegenError as e:
            self.report_error(e)
            return None
        print(label, file=self.diag)
        if self.verbose:
            print(str(unit.module), file=self.diag)
        self.units.append(unit)
        return unit

    def handle_definition(self) -> CompiledUnit | None:
        try:
            node = self.parser.parse_definition()
        except SyntaxError as e:
            self.report_error(e)
            self.parser.synchronize()
            return None
        unit = self._compile(node, "Read function definition:")
        if unit is not None and self.jit is not None:
            try:
                self.jit.add_unit(unit)
            except JITError as e:
                self.report_error(e)
        return unit

    def handle_extern(self) -> CompiledUnit | None:
        try:
            node = self.parser.parse_extern()
        except SyntaxError as e:
            self.report_error(e)
            self.parser.synchronize()
            return None
        return self._compile(node, "Read extern:")

    def handle_top_level_expression(self) -> CompiledUnit | None:
        try:
            node = self.parser.parse_top_level_expr()
        except SyntaxError as e:
            self.report_error(e)
            self.parser.synchronize()
            return None
        unit = self._compile(node, "Read top-level expression:")
        if unit is not None and self.jit is not None:
            try:
                value = self.jit.run(unit)
            except JITError as e:
                self.report_error(e)
                return unit
            self.results.append(value)
            print(f"Evaluated to {value}", file=self.out)
        return unit

    def step(self) -> bool:
        """Handles one top-level construct. Returns False at end of input."""
        tok = self.parser.skip_separators()
        if tok.type == EOF:
            return False
        if tok.type == DEF:
            self.handle_definition()
        elif tok.type == EXTERN:
            self.handle_extern()
        else:
            self.handle_top_level_expression()
        return True

    def run(self) -> None:
        while self.step():
            pass

    def dump_module(self) -> str:
        return self.codegen.dump()


def start_repl(
    precedence: PrecedenceTable | None = None,
    verbose: bool = False,
    execute: bool = True,
    dump_module: bool = False,
    reader: Callable[[str], str] | None = None,
) -> Session:
    print("Kaleido REPL. Press Ctrl-D to exit.")
    session = Session(
        ConsoleStream(reader=reader),
        jit=JITEngine() if execute else None,
        precedence=precedence,
        verbose=verbose,
    )
    if verbose:
        print("[precedence] >>>")
        print(session.parser.precedence.report())
    try:
        session.run()
    except KeyboardInterrupt:
        pass
    print("\nExiting Kaleido REPL.")
    if dump_module:
        print(session.dump_module(), file=session.diag)
    return session


def main() -> None:
    start_repl()


if __name__ == "__main__":
    main()
