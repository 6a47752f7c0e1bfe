"""
Defines the abstract syntax tree (AST) node structure for the Kaleido language.

The node set is closed: four expression variants plus the two top-level
function forms. Every node exclusively owns its children, so a tree never
shares a subtree and never contains a cycle.

Classes:
    ASTNode: Common base carrying the `kind` tag.
    NumberLiteral: A numeric constant.
    VariableRef: A reference to a function parameter, resolved at codegen time.
    BinaryOp: A binary operator applied to two operand expressions.
    Call: A call of a named function with argument expressions.
    Prototype: A function name and its parameter names.
    FunctionDef: A prototype together with its body expression.

    ASTDict:
        TypedDict shape produced by `ASTNode.to_dict()` for debugging and JSON.

Each node tracks:
    kind (str): The variant tag, used by the code generator to dispatch.
    line (int): Source line number for error messages.
    col (int): Source column number for error messages.

Positions do not take part in equality, so trees built by hand compare equal
to parsed ones.

Example:
    node = BinaryOp("+", NumberLiteral(1.0), VariableRef("x"))
"""

from dataclasses import dataclass, field
from typing import ClassVar, TypedDict, Union


class ASTDict(TypedDict, total=False):
    """
    TypedDict representation of an ASTNode used for serialization.

    Fields:
        kind (str): The node variant ("number", "variable", "binary", ...).
        line (int): Line number in the source code where the node originates.
        col (int): Column number in the source code where the node originates.
        value (float): NumberLiteral value.
        name (str): VariableRef / Prototype name.
        op (str): BinaryOp operator.
        left (ASTDict), right (ASTDict): BinaryOp operands.
        callee (str): Call target name.
        args (list[ASTDict]): Call arguments.
        params (list[str]): Prototype parameter names.
        prototype (ASTDict), body (ASTDict): FunctionDef parts.
    """

    kind: str
    line: int
    col: int
    value: float
    name: str
    op: str
    left: "ASTDict"
    right: "ASTDict"
    callee: str
    args: list["ASTDict"]
    params: list[str]
    prototype: "ASTDict"
    body: "ASTDict"


@dataclass
class ASTNode:
    """Base class of every Kaleido AST node."""

    kind: ClassVar[str] = "node"

    def to_dict(self) -> ASTDict:
        raise NotImplementedError(f"{type(self).__name__} cannot be serialized")


@dataclass
class NumberLiteral(ASTNode):
    kind: ClassVar[str] = "number"

    value: float
    line: int = field(default=0, compare=False)
    col: int = field(default=0, compare=False)

    def to_dict(self) -> ASTDict:
        return {"kind": self.kind, "value": self.value, "line": self.line, "col": self.col}


@dataclass
class VariableRef(ASTNode):
    kind: ClassVar[str] = "variable"

    name: str
    line: int = field(default=0, compare=False)
    col: int = field(default=0, compare=False)

    def to_dict(self) -> ASTDict:
        return {"kind": self.kind, "name": self.name, "line": self.line, "col": self.col}


@dataclass
class BinaryOp(ASTNode):
    kind: ClassVar[str] = "binary"

    op: str
    left: "Expr"
    right: "Expr"
    line: int = field(default=0, compare=False)
    col: int = field(default=0, compare=False)

    def to_dict(self) -> ASTDict:
        return {
            "kind": self.kind,
            "op": self.op,
            "left": self.left.to_dict(),
            "right": self.right.to_dict(),
            "line": self.line,
            "col": self.col,
        }


@dataclass
class Call(ASTNode):
    kind: ClassVar[str] = "call"

    callee: str
    args: list["Expr"] = field(default_factory=list)
    line: int = field(default=0, compare=False)
    col: int = field(default=0, compare=False)

    def to_dict(self) -> ASTDict:
        return {
            "kind": self.kind,
            "callee": self.callee,
            "args": [arg.to_dict() for arg in self.args],
            "line": self.line,
            "col": self.col,
        }


@dataclass
class Prototype(ASTNode):
    """Function signature. An empty `name` marks an anonymous expression wrapper."""

    kind: ClassVar[str] = "prototype"

    name: str
    params: list[str] = field(default_factory=list)
    line: int = field(default=0, compare=False)
    col: int = field(default=0, compare=False)

    @property
    def arity(self) -> int:
        return len(self.params)

    @property
    def is_anonymous(self) -> bool:
        return self.name == ""

    def to_dict(self) -> ASTDict:
        return {
            "kind": self.kind,
            "name": self.name,
            "params": list(self.params),
            "line": self.line,
            "col": self.col,
        }


@dataclass
class FunctionDef(ASTNode):
    kind: ClassVar[str] = "function"

    prototype: Prototype
    body: "Expr"
    line: int = field(default=0, compare=False)
    col: int = field(default=0, compare=False)

    def to_dict(self) -> ASTDict:
        return {
            "kind": self.kind,
            "prototype": self.prototype.to_dict(),
            "body": self.body.to_dict(),
            "line": self.line,
            "col": self.col,
        }


Expr = Union[NumberLiteral, VariableRef, BinaryOp, Call]
"""Any node that produces a value."""

TopLevel = Union[FunctionDef, Prototype]
"""What a single top-level parse hands to the code generator."""


__all__ = [
    "ASTDict",
    "ASTNode",
    "BinaryOp",
    "Call",
    "Expr",
    "FunctionDef",
    "NumberLiteral",
    "Prototype",
    "TopLevel",
    "VariableRef",
]
