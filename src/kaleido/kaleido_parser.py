"""
Kaleido Language Parser

Parses Kaleido tokens into abstract syntax trees (ASTs) by recursive descent,
with operator-precedence climbing for binary expressions.

Grammar
-------
    top_level      := definition | extern | expression ';'?
    definition     := 'def' prototype expression
    extern         := 'extern' prototype
    prototype      := identifier '(' identifier* ')'
    expression     := primary binop_rhs
    primary        := number | identifier_expr | '(' expression ')'
    identifier_expr:= identifier [ '(' (expression (',' expression)*)? ')' ]
    binop_rhs      := ( binary_operator primary )*

Parser Behavior
---------------
- Pulls tokens from the Lexer on demand and keeps a single lookahead token.
- Raises `SyntaxError` on malformed input. The offending token is left as the
  current token; the failing call consumes nothing past it. Recovering from
  the error is the caller's job (see `Parser.synchronize`).
- Nodes are only built once every child parsed, so no partial tree escapes.

Entry Points
------------
- `parse_definition()`: `def` form, returns a FunctionDef.
- `parse_extern()`: `extern` form, returns a Prototype.
- `parse_top_level_expr()`: bare expression wrapped in an anonymous FunctionDef.
- `parse_top_level()`: any one of the three, chosen by the current token.
- `parse()`: every top-level construct until EOF, fail-fast.
"""

from __future__ import annotations

from kaleido.kaleido_ast import (
    BinaryOp,
    Call,
    Expr,
    FunctionDef,
    NumberLiteral,
    Prototype,
    TopLevel,
    VariableRef,
)
from kaleido.kaleido_config import PrecedenceTable
from kaleido.kaleido_constants import CHAR, DEF, EOF, EXTERN, IDENT, NUMBER
from kaleido.kaleido_lexer import Lexer, Token

MAX_NESTING = 128


class Parser:
    """
    Kaleido Parser Class

    Attributes
    ----------
    lexer : Lexer
        Token source, pulled one token at a time.
    precedence : PrecedenceTable
        Binary operator precedences consulted by the climbing loop.
    depth : int
        Current expression nesting depth, bounded by MAX_NESTING.
    """

    def __init__(self, lexer: Lexer, precedence: PrecedenceTable | None = None) -> None:
        self.lexer = lexer
        self.precedence = precedence if precedence is not None else PrecedenceTable.from_defaults()
        self.tok: Token | None = None
        self.depth = 0

    def current(self) -> Token:
        """Returns the lookahead token, pulling the first one on demand."""
        if self.tok is None:
            self.tok = self.lexer.next_token()
        return self.tok

    def advance(self) -> Token:
        self.tok = self.lexer.next_token()
        return self.tok

    def error(self, message: str) -> SyntaxError:
        tok = self.current()
        return SyntaxError(f"{message} at line {tok.line}, col {tok.col}")

    def token_precedence(self) -> int:
        """Precedence of the current token, or -1 if it is not a binary operator."""
        tok = self.current()
        if tok.type != CHAR:
            return -1
        return self.precedence.get(tok.value)

    # Expressions

    def parse_number_expr(self) -> NumberLiteral:
        tok = self.current()
        self.advance()
        return NumberLiteral(float(tok.value), line=tok.line, col=tok.col)

    def parse_paren_expr(self) -> Expr:
        self.advance()  # eat '('
        expr = self.parse_expression()
        if not self.current().is_char(")"):
            raise self.error("Expected ')'")
        self.advance()
        return expr

    def parse_identifier_expr(self) -> Expr:
        """Parse a variable reference, or a call if the name is followed by '('."""
        ident = self.current()
        name = str(ident.value)
        self.advance()

        if not self.current().is_char("("):
            return VariableRef(name, line=ident.line, col=ident.col)

        self.advance()  # eat '('
        args: list[Expr] = []
        if not self.current().is_char(")"):
            while True:
                args.append(self.parse_expression())
                if self.current().is_char(")"):
                    break
                if not self.current().is_char(","):
                    raise self.error("Expected ')' or ',' in argument list")
                self.advance()
        self.advance()  # eat ')'
        return Call(name, args, line=ident.line, col=ident.col)

    def parse_primary(self) -> Expr:
        tok = self.current()
        if tok.type == IDENT:
            return self.parse_identifier_expr()
        if tok.type == NUMBER:
            return self.parse_number_expr()
        if tok.is_char("("):
            return self.parse_paren_expr()
        raise self.error(f"Unknown token {tok.value!r} when expecting an expression")

    def parse_binop_rhs(self, expr_prec: int, lhs: Expr) -> Expr:
        """Fold `(operator primary)*` onto `lhs`, honoring precedence.

        Only operators binding at least as tightly as `expr_prec` are consumed.
        Each folded operator counts toward MAX_NESTING, the same as a
        parenthesis.
        """
        folded = 0
        try:
            while True:
                tok_prec = self.token_precedence()
                if tok_prec < expr_prec:
                    return lhs
                if self.depth >= MAX_NESTING:
                    raise self.error("Expression nested too deeply")

                op_tok = self.current()
                self.advance()
                rhs = self.parse_primary()

                # A tighter operator after rhs takes rhs as its own left operand.
                if tok_prec < self.token_precedence():
                    rhs = self.parse_binop_rhs(tok_prec + 1, rhs)

                lhs = BinaryOp(str(op_tok.value), lhs, rhs, line=op_tok.line, col=op_tok.col)
                self.depth += 1
                folded += 1
        finally:
            self.depth -= folded

    def parse_expression(self) -> Expr:
        if self.depth >= MAX_NESTING:
            raise self.error("Expression nested too deeply")
        self.depth += 1
        try:
            lhs = self.parse_primary()
            return self.parse_binop_rhs(0, lhs)
        finally:
            self.depth -= 1

    # Top-level forms

    def parse_prototype(self) -> Prototype:
        name_tok = self.current()
        if name_tok.type != IDENT:
            raise self.error("Expected function name in prototype")
        self.advance()

        if not self.current().is_char("("):
            raise self.error("Expected '(' in prototype")

        params: list[str] = []
        while self.advance().type == IDENT:
            params.append(str(self.current().value))
        if not self.current().is_char(")"):
            raise self.error("Expected ')' in prototype")
        self.advance()
        return Prototype(str(name_tok.value), params, line=name_tok.line, col=name_tok.col)

    def parse_definition(self) -> FunctionDef:
        def_tok = self.current()
        self.advance()  # eat 'def'
        proto = self.parse_prototype()
        body = self.parse_expression()
        return FunctionDef(proto, body, line=def_tok.line, col=def_tok.col)

    def parse_extern(self) -> Prototype:
        self.advance()  # eat 'extern'
        return self.parse_prototype()

    def parse_top_level_expr(self) -> FunctionDef:
        start = self.current()
        body = self.parse_expression()
        proto = Prototype("", [], line=start.line, col=start.col)
        return FunctionDef(proto, body, line=start.line, col=start.col)

    def parse_top_level(self) -> TopLevel:
        """Parse one top-level construct chosen by the current token."""
        tok = self.current()
        if tok.type == DEF:
            return self.parse_definition()
        if tok.type == EXTERN:
            return self.parse_extern()
        return self.parse_top_level_expr()

    def skip_separators(self) -> Token:
        """Discards top-level ';' tokens and returns the first other token."""
        while self.current().is_char(";"):
            self.advance()
        return self.current()

    def synchronize(self) -> None:
        """Discard tokens after a parse error up to the next top-level boundary.

        A boundary is a ';' (consumed), a `def`/`extern` keyword, EOF, or the
        first token on a later line than the offending one. The offending
        token is always consumed unless it is itself a boundary.
        """
        error_line = self.current().line
        while True:
            tok = self.current()
            if tok.type in (EOF, DEF, EXTERN) or tok.line > error_line:
                return
            self.advance()
            if tok.is_char(";"):
                return

    def parse(self) -> list[TopLevel]:
        """Parse every top-level construct until EOF."""
        nodes: list[TopLevel] = []
        while self.skip_separators().type != EOF:
            nodes.append(self.parse_top_level())
        return nodes


__all__ = ["MAX_NESTING", "Parser"]
