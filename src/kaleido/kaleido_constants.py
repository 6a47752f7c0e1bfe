"""
Shared token and operator tables for the Kaleido language.

Exports:
    - EOF, DEF, EXTERN, IDENT, NUMBER, CHAR: canonical token types
    - token_hashmap: reserved words mapped to their token types
    - DEFAULT_PRECEDENCE: default binary operator precedence table
"""

EOF = "EOF"
DEF = "DEF"
EXTERN = "EXTERN"
IDENT = "IDENT"
NUMBER = "NUMBER"
CHAR = "CHAR"

token_hashmap: dict[str, str] = {
    "def": DEF,
    "extern": EXTERN,
}

# Higher binds tighter. Every operator is left-associative.
DEFAULT_PRECEDENCE: dict[str, int] = {
    "<": 10,
    "+": 20,
    "-": 20,
    "*": 40,
}

COMMENT_START = "#"
COMMENT_TERMINATORS = "\n\r"

ANON_PREFIX = "__anon_expr"
