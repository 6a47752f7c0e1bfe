"""
Provides the `PrecedenceTable` class for configuring binary operator precedence
in the Kaleido language.

The parser's precedence-climbing loop consults this table to decide which
characters are binary operators and how tightly each one binds.

Classes:
    - PrecedenceTable: Maps operator characters to positive integer precedences.
    - ConfigError: Raised when a configuration is invalid.

Features:
    - Starts from `DEFAULT_PRECEDENCE` (`<` 10, `+`/`-` 20, `*` 40)
    - Validates operators (single, non-alphanumeric, non-reserved characters)
      and precedences (positive integers), reporting every problem at once
    - Loads overrides from JSON files
    - Generates a sorted report for the REPL

Usage:
    >>> table = PrecedenceTable.from_defaults()
    >>> table.configure({"/": 40})
    >>> table.get("/")
    40

Note:
    An operator configured here but unknown to the code generator parses fine
    and then fails code generation with "invalid binary operator".
"""

import json
from typing import Any

from kaleido.kaleido_constants import COMMENT_START, DEFAULT_PRECEDENCE

_RESERVED_CHARS = {"(", ")", ",", ";", ".", COMMENT_START}


class ConfigError(Exception):
    """Raised when a precedence configuration is invalid.

    Attributes:
        problems (list[str]): One description per rejected entry.
    """

    def __init__(self, message: str, problems: list[str] | None = None):
        super().__init__(message)
        self.problems = problems or []


class PrecedenceTable:
    """Binary operator precedence table.

    Attributes:
        table (dict[str, int]): Operator character to precedence; higher binds tighter.
    """

    def __init__(self, table: dict[str, int] | None = None) -> None:
        self.table: dict[str, int] = {}
        if table:
            self.configure(table)

    @classmethod
    def from_defaults(cls) -> "PrecedenceTable":
        return cls(dict(DEFAULT_PRECEDENCE))

    def get(self, op: Any) -> int:
        """Returns the precedence of `op`, or -1 if it is not a binary operator."""
        if not isinstance(op, str):
            return -1
        return self.table.get(op, -1)

    def __contains__(self, op: object) -> bool:
        return op in self.table

    def report(self) -> str:
        """Formats the table, tightest-binding operators first."""
        rows = sorted(self.table.items(), key=lambda item: (-item[1], item[0]))
        return "\n".join(f"{op:>4} → {prec}" for op, prec in rows)

    def configure(self, cfg: dict[Any, Any]) -> None:
        """
        Applies operator precedences, adding to or overriding current entries.

        The update is all-or-nothing: if any entry is invalid, nothing changes.

        Args:
            cfg: Maps operator characters to precedences.

        Raises:
            ConfigError: If `cfg` is not a dict or any entry is invalid.
        """
        if not isinstance(cfg, dict):
            raise ConfigError("Configuration must be a dict of operator → precedence")

        updates: dict[str, int] = {}
        problems: list[str] = []
        for op, prec in cfg.items():
            if not isinstance(op, str) or len(op) != 1:
                problems.append(f"{op!r}: operator must be a single character")
            elif op.isalnum() or op.isspace() or op in _RESERVED_CHARS:
                problems.append(f"{op!r}: character cannot be used as an operator")
            elif isinstance(prec, bool) or not isinstance(prec, int) or prec <= 0:
                problems.append(f"{op!r}: precedence must be a positive integer, got {prec!r}")
            else:
                updates[op] = prec

        if problems:
            raise ConfigError("Invalid precedence configuration", problems)
        self.table.update(updates)

    def load_from_json(self, path: str) -> None:
        """
        Loads operator precedences from a JSON object file, e.g. `{"/": 40}`.

        Args:
            path: Path to the JSON file.

        Raises:
            ConfigError: If the file cannot be read or its contents are invalid.
        """
        try:
            with open(path, encoding="utf-8") as f:
                raw_cfg = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Failed to load precedence file: {e}") from e
        self.configure(raw_cfg)


__all__ = ["ConfigError", "PrecedenceTable"]
