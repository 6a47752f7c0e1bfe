"""
Lexical analyzer for the Kaleido language.

This module turns a pull-based character source into a lazy stream of tokens:

Classes:
    CharacterStream: In-memory character source with line/column tracking.
    ConsoleStream: Interactive character source that pulls lines from `input()`.
    Token: A single token with type, value, and source location.
    Lexer: Produces one Token per `next_token()` call.

Features:
    - Skips whitespace and `#` line comments
    - Recognizes:
        * `def` and `extern` keywords
        * Identifiers (alphabetic start, alphanumeric tail)
        * Numbers (runs of digits and `.`, read like C `strtod`)
        * Any other single character as a CHAR token
    - Never fails: end of input is the EOF token

Example:
    >>> lexer = Lexer(CharacterStream("def f(x) x*2"))
    >>> lexer.next_token()
    Token(DEF, def)

Exports:
    - CharacterStream
    - ConsoleStream
    - Token
    - Lexer
    - parse_number
"""

import re
from collections.abc import Callable
from typing import Any, Protocol

from kaleido.kaleido_constants import (
    CHAR,
    COMMENT_START,
    COMMENT_TERMINATORS,
    EOF,
    IDENT,
    NUMBER,
    token_hashmap,
)

_FLOAT_PREFIX = re.compile(r"\d*(?:\.\d*)?")


def parse_number(text: str) -> float:
    """Converts a scanned numeric run to a float the way C `strtod` does.

    The scanner accepts any run of digits and dots, so "1.2.3" reaches here.
    Only the longest valid prefix is converted ("1.2.3" -> 1.2); a run without
    digits in that prefix, such as ".", converts to 0.0.

    Args:
        text (str): The raw digits-and-dots run.

    Returns:
        float: The converted value.
    """
    prefix = _FLOAT_PREFIX.match(text)
    digits = prefix.group(0) if prefix else ""
    if not any(ch.isdigit() for ch in digits):
        return 0.0
    return float(digits)


class CharSource(Protocol):  # pragma: no cover
    """Protocol for anything the Lexer can pull characters from.

    `next()` returns one character, or an empty string at end of input.
    `line` and `column` describe the position of the character `next()`
    will return.
    """

    line: int
    column: int

    def next(self) -> str: ...  # pragma: no cover


class CharacterStream:
    """
    Reads characters from a string source with line and column tracking.

    Attributes:
        source (str): The input source string.
        position (int): Current index in the source.
        line (int): Current line number (1-indexed).
        column (int): Current column number (1-indexed).
    """

    def __init__(self, source: str, position: int = 0, line: int = 1, column: int = 1):
        self.source = source
        self.position = position
        self.line = line
        self.column = column

    def next(self) -> str:
        """
        Consumes and returns the next character in the stream.

        Returns:
            str: The next character, or "" once the source is exhausted.
        """
        if self.position >= len(self.source):
            return ""
        char = self.source[self.position]
        if char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.position += 1
        return char


class ConsoleStream:
    """Interactive character source backed by a line reader.

    A new line is requested (showing `prompt`) only when the lexer actually
    needs another character, so the REPL prompts lazily. `EOFError` from the
    reader marks the end of input.

    Attributes:
        prompt (str): Text shown when a new line is requested.
        reader (Callable[[str], str]): Line reader, `input` by default.
        line (int): Line of the next character (1-indexed).
        column (int): Column of the next character (1-indexed).
    """

    def __init__(
        self, prompt: str = "ready> ", reader: Callable[[str], str] | None = None
    ) -> None:
        self.prompt = prompt
        self.reader: Callable[[str], str] = reader if reader is not None else input
        self.buffer = ""
        self.position = 0
        self.line = 1
        self.column = 1
        self.exhausted = False

    def next(self) -> str:
        while self.position >= len(self.buffer):
            if self.exhausted:
                return ""
            try:
                text = self.reader(self.prompt)
            except EOFError:
                self.exhausted = True
                return ""
            self.buffer = text + "\n"
            self.position = 0
        char = self.buffer[self.position]
        self.position += 1
        if char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return char


class Token:
    """Represents a single lexical token in the Kaleido language.

    Attributes:
        type (str): One of EOF, DEF, EXTERN, IDENT, NUMBER, CHAR.
        value (str | float): Identifier text, numeric value, keyword text, or
            the character itself for CHAR tokens.
        line (int): The 1-based line number where the token starts.
        col (int): The 1-based column number where the token starts.
    """

    def __init__(self, type_: str, value: str | float, line: int = 0, col: int = 0):
        self.type = type_
        self.value = value
        self.line = line
        self.col = col

    def __repr__(self) -> str:
        return f"Token({self.type}, {self.value})"

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, Token)
            and self.type == other.type
            and self.value == other.value
            and self.line == other.line
            and self.col == other.col
        )

    def __hash__(self) -> int:
        return hash((self.type, self.value, self.line, self.col))

    def is_char(self, char: str) -> bool:
        """True if this is the CHAR token for `char`."""
        return self.type == CHAR and self.value == char


class Lexer:
    """Lexical analyzer for the Kaleido language.

    The lexer holds exactly one character of lookahead (`last_char`) between
    calls, so multi-character tokens are assembled without a buffer.

    Attributes:
        stream (CharSource): The source to tokenize.
        last_char (str): The current unconsumed character ("" at end of input).
    """

    def __init__(self, stream: CharSource) -> None:
        self.stream = stream
        self.last_char = " "
        self.char_line = stream.line
        self.char_col = stream.column

    def advance(self) -> str:
        """Pulls the next character into the lookahead slot and returns it."""
        self.char_line, self.char_col = self.stream.line, self.stream.column
        self.last_char = self.stream.next()
        return self.last_char

    def skip_whitespace(self) -> None:
        while self.last_char != "" and self.last_char.isspace():
            self.advance()

    def skip_comment(self) -> None:
        """Discards characters through the end of the current line."""
        while self.last_char != "" and self.last_char not in COMMENT_TERMINATORS:
            self.advance()

    def next_token(self) -> Token:
        """Consumes and returns the next Token from the stream.

        Returns:
            Token: The next token; EOF once the input is exhausted.
        """
        self.skip_whitespace()
        while self.last_char == COMMENT_START:
            self.skip_comment()
            self.skip_whitespace()
        line, col = self.char_line, self.char_col

        # 1. Identifier or keyword
        if self.last_char.isalpha():
            ident = self.last_char
            while self.advance().isalnum():
                ident += self.last_char
            if ident in token_hashmap:
                return Token(token_hashmap[ident], ident, line, col)
            return Token(IDENT, ident, line, col)

        # 2. Number
        if self.last_char.isdigit() or self.last_char == ".":
            num = ""
            while self.last_char.isdigit() or self.last_char == ".":
                num += self.last_char
                self.advance()
            return Token(NUMBER, parse_number(num), line, col)

        if self.last_char == "":
            return Token(EOF, EOF, line, col)

        # 3. Anything else is its own token
        char = self.last_char
        self.advance()
        return Token(CHAR, char, line, col)

    def __iter__(self) -> "Lexer":
        return self

    def __next__(self) -> Token:
        tok = self.next_token()
        if tok.type == EOF:
            raise StopIteration
        return tok


__all__ = [
    "CharacterStream",
    "ConsoleStream",
    "Lexer",
    "Token",
    "parse_number",
    "token_hashmap",
]
