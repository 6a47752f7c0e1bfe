"""
Lowers Kaleido ASTs to LLVM IR with llvmlite.

Classes and Features:
    - CodegenError: Raised for every semantic failure (unknown names, arity
      mismatches, redefinitions, invalid IR).
    - FunctionEntry / FunctionRegistry: Session-wide record of every named
      function: its arity, its latest IR handle, and whether it has a body.
    - CompiledUnit: One top-level construct lowered into its own `ir.Module`.
    - CodeGenerator: Dispatches AST nodes to `generate_<kind>` methods.

Every top-level construct gets a fresh module. A call to a function from an
earlier unit adds a declaration of that function to the current unit, so a
unit only ever holds complete definitions and plain declarations.

Registry entries move Undeclared -> Declared -> Defined and never back. A
failed definition rolls its entry back to the state it had before the
definition started, so later lookups never see a half-built function.

Raises:
    CodegenError: On any semantic error. The registry is unchanged afterwards,
        and the same holds for any other exception raised mid-definition.
    TypeError: If asked to compile something that is not a top-level node.
    NotImplementedError: If a node kind has no `generate_*` method.
"""

import itertools
from dataclasses import dataclass, replace

import llvmlite.binding as llvm
from llvmlite import ir

from kaleido.kaleido_ast import (
    ASTNode,
    BinaryOp,
    Call,
    FunctionDef,
    NumberLiteral,
    Prototype,
    TopLevel,
    VariableRef,
)
from kaleido.kaleido_constants import ANON_PREFIX

DOUBLE = ir.DoubleType()


class CodegenError(Exception):
    """Semantic error found while generating IR."""


@dataclass
class FunctionEntry:
    """A registered function.

    Attributes:
        name (str): Function name.
        arity (int): Declared number of parameters.
        defined (bool): True once a body has been attached.
        function (ir.Function): The most recent IR handle for the function.
    """

    name: str
    arity: int
    defined: bool = False
    function: ir.Function | None = None

    @property
    def state(self) -> str:
        return "defined" if self.defined else "declared"


class FunctionRegistry:
    """Maps function names to FunctionEntry records for the whole session.

    Entries are added by declarations and completed by definitions. Only a
    rollback (`restore(name, None)`) of the definition that introduced a name
    drops one.
    """

    def __init__(self) -> None:
        self.entries: dict[str, FunctionEntry] = {}

    def lookup(self, name: str) -> FunctionEntry | None:
        return self.entries.get(name)

    def declare(self, name: str, arity: int, function: ir.Function) -> FunctionEntry:
        entry = FunctionEntry(name, arity, False, function)
        self.entries[name] = entry
        return entry

    def mark_defined(self, name: str, function: ir.Function) -> None:
        entry = self.entries[name]
        entry.defined = True
        entry.function = function

    def snapshot(self, name: str) -> FunctionEntry | None:
        """Returns a detached copy of the entry for a later `restore`."""
        entry = self.entries.get(name)
        return replace(entry) if entry is not None else None

    def restore(self, name: str, entry: FunctionEntry | None) -> None:
        if entry is None:
            self.entries.pop(name, None)
        else:
            self.entries[name] = entry

    def names(self) -> list[str]:
        return list(self.entries)

    def __contains__(self, name: object) -> bool:
        return name in self.entries

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class CompiledUnit:
    """The IR produced for one top-level construct.

    Attributes:
        module (ir.Module): Module holding the function and any callee declarations.
        function (ir.Function): The defined or declared function.
        anonymous (bool): True for a bare-expression wrapper.
    """

    module: ir.Module
    function: ir.Function
    anonymous: bool = False

    @property
    def name(self) -> str:
        return str(self.function.name)

    @property
    def is_definition(self) -> bool:
        return not self.function.is_declaration

    def __str__(self) -> str:
        return str(self.module)


def verify_module(module: ir.Module, name: str) -> None:
    """Parses the module text back through LLVM and runs its verifier.

    Raises:
        CodegenError: If LLVM rejects the module.
    """
    try:
        llvm.parse_assembly(str(module)).verify()
    except RuntimeError as e:
        raise CodegenError(f"invalid IR generated for '{name}': {e}") from e


class CodeGenerator:
    """Generates LLVM IR from Kaleido AST nodes.

    Attributes:
        registry (FunctionRegistry): Every named function seen so far.
        named_values (dict[str, ir.Value]): Parameters of the function being
            generated; replaced wholesale for each function.
        module (ir.Module | None): Module of the unit being generated.
        builder (ir.IRBuilder | None): Insertion point inside the current body.
        expressions (list[ir.Function]): Top-level expression wrappers that compiled.
    """

    def __init__(self, registry: FunctionRegistry | None = None, module_name: str = "kaleido") -> None:
        self.registry = registry if registry is not None else FunctionRegistry()
        self.module_name = module_name
        self.named_values: dict[str, ir.Value] = {}
        self.module: ir.Module | None = None
        self.builder: ir.IRBuilder | None = None
        self._unit_ids = itertools.count()
        self._anon_ids = itertools.count()
        self.expressions: list[ir.Function] = []

    def compile(self, node: TopLevel) -> CompiledUnit:
        """Lowers one top-level construct into a fresh, verified module.

        Args:
            node: A FunctionDef (definition or anonymous expression) or a
                Prototype (extern declaration).

        Returns:
            The CompiledUnit for `node`.

        Raises:
            CodegenError: If generation fails; nothing from `node` stays registered.
            TypeError: If `node` is not a top-level node.
        """
        if not isinstance(node, (FunctionDef, Prototype)):
            raise TypeError(f"Cannot compile {type(node).__name__} at top level")
        self.module = ir.Module(name=f"{self.module_name}.{next(self._unit_ids)}")
        self.named_values = {}
        self.builder = None
        function = self.generate(node)
        anonymous = isinstance(node, FunctionDef) and node.prototype.is_anonymous
        return CompiledUnit(self.module, function, anonymous)

    def generate(self, node: ASTNode) -> ir.Value:
        method = getattr(self, f"generate_{node.kind}", None)
        if method is None:
            raise NotImplementedError(
                f"No generator for node kind '{node.kind}' "
                f"(line {getattr(node, 'line', 0)}, col {getattr(node, 'col', 0)})"
            )
        return method(node)

    def _require_builder(self) -> ir.IRBuilder:
        if self.builder is None:
            raise CodegenError("expression generated outside of a function body")
        return self.builder

    def generate_number(self, node: NumberLiteral) -> ir.Value:
        return ir.Constant(DOUBLE, node.value)

    def generate_variable(self, node: VariableRef) -> ir.Value:
        value = self.named_values.get(node.name)
        if value is None:
            raise CodegenError(f"Unknown variable name '{node.name}'")
        return value

    def generate_binary(self, node: BinaryOp) -> ir.Value:
        lhs = self.generate(node.left)
        rhs = self.generate(node.right)
        builder = self._require_builder()
        if node.op == "+":
            return builder.fadd(lhs, rhs, name="addtmp")
        if node.op == "-":
            return builder.fsub(lhs, rhs, name="subtmp")
        if node.op == "*":
            return builder.fmul(lhs, rhs, name="multmp")
        if node.op == "<":
            cmp = builder.fcmp_unordered("<", lhs, rhs, name="cmptmp")
            return builder.uitofp(cmp, DOUBLE, name="booltmp")
        raise CodegenError(f"invalid binary operator '{node.op}'")

    def generate_call(self, node: Call) -> ir.Value:
        entry = self.registry.lookup(node.callee)
        if entry is None:
            raise CodegenError(f"Unknown function referenced '{node.callee}'")
        if entry.arity != len(node.args):
            raise CodegenError(
                f"Incorrect # arguments passed to '{node.callee}': "
                f"expected {entry.arity}, got {len(node.args)}"
            )
        args = [self.generate(arg) for arg in node.args]
        callee = self._function_in_unit(node.callee, entry.arity)
        return self._require_builder().call(callee, args, name="calltmp")

    def _function_in_unit(self, name: str, arity: int) -> ir.Function:
        """Returns `name` from the current unit, declaring it there if absent."""
        if self.module is None:
            raise CodegenError(f"function '{name}' referenced outside of a compilation unit")
        existing = self.module.globals.get(name)
        if isinstance(existing, ir.Function):
            return existing
        fnty = ir.FunctionType(DOUBLE, [DOUBLE] * arity)
        return ir.Function(self.module, fnty, name=name)

    def _next_anon_name(self) -> str:
        return f"{ANON_PREFIX}{next(self._anon_ids)}"

    def generate_prototype(self, node: Prototype) -> ir.Function:
        """Declares the function in the current unit and registers it.

        Anonymous prototypes get a fresh generated name and are not registered.
        """
        seen: set[str] = set()
        for param in node.params:
            if param in seen:
                raise CodegenError(f"duplicate parameter name '{param}' in '{node.name}'")
            seen.add(param)

        if node.is_anonymous:
            function = self._function_in_unit(self._next_anon_name(), node.arity)
        else:
            entry = self.registry.lookup(node.name)
            if entry is not None:
                if entry.arity != node.arity:
                    raise CodegenError(f"redefinition of function '{node.name}' with different # args")
                if entry.defined:
                    raise CodegenError(f"redefinition of function '{node.name}'")
            function = self._function_in_unit(node.name, node.arity)
            if entry is None:
                self.registry.declare(node.name, node.arity, function)
            else:
                entry.function = function

        for arg, param in zip(function.args, node.params):
            arg.name = param
        return function

    def generate_function(self, node: FunctionDef) -> ir.Function:
        proto = node.prototype
        previous = None if proto.is_anonymous else self.registry.snapshot(proto.name)
        function = self.generate_prototype(proto)
        self.named_values = dict(zip(proto.params, function.args))

        try:
            block = function.append_basic_block(name="entry")
            self.builder = ir.IRBuilder(block)
            retval = self.generate(node.body)
            self.builder.ret(retval)
            verify_module(function.module, function.name)
        except Exception:
            if not proto.is_anonymous:
                self.registry.restore(proto.name, previous)
            raise
        finally:
            self.builder = None

        if proto.is_anonymous:
            self.expressions.append(function)
        else:
            self.registry.mark_defined(proto.name, function)
        return function

    def dump(self) -> str:
        """IR text of every registered function in registration order, then
        every top-level expression wrapper in the order it was compiled."""
        functions = [
            entry.function
            for entry in self.registry.entries.values()
            if entry.function is not None
        ]
        return "\n".join(str(fn) for fn in functions + self.expressions)


__all__ = [
    "CodeGenerator",
    "CodegenError",
    "CompiledUnit",
    "FunctionEntry",
    "FunctionRegistry",
    "verify_module",
]
