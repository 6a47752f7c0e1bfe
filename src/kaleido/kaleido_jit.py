"""
Executes compiled Kaleido units with llvmlite's MCJIT.

Classes:
    - JITError: Raised when a unit cannot be loaded or invoked.
    - JITEngine: Owns an MCJIT compiler for the native target.

Definitions handed to `add_unit` are held pending and only loaded into the
engine when something that needs them runs. Before anything is finalized,
every referenced symbol is resolved either to a JIT definition or to a symbol
of the host process (libm's `sin`, for instance); anything else raises
JITError instead of reaching the native linker.

Example:
    >>> engine = JITEngine()
    >>> engine.add_unit(codegen.compile(parser.parse_definition()))
    >>> engine.run(codegen.compile(parser.parse_top_level_expr()))
    7.0
"""

from __future__ import annotations

import ctypes

import llvmlite.binding as llvm

from kaleido.kaleido_codegen import CompiledUnit


class JITError(Exception):
    """A unit could not be loaded or invoked."""


def declared_functions(module: llvm.ModuleRef) -> list[str]:
    """Names of the functions `module` declares but does not define."""
    return [fn.name for fn in module.functions if fn.is_declaration]


class JITEngine:
    """MCJIT-backed execution engine.

    Attributes:
        target_machine (llvm.TargetMachine): Native target used for codegen.
        engine (llvm.ExecutionEngine): The underlying MCJIT compiler.
        pending (dict[str, llvm.ModuleRef]): Definitions not yet loaded.
        loaded (set[str]): Names of definitions already in the engine.
        arities (dict[str, int]): Parameter counts of every added definition.
    """

    def __init__(self) -> None:
        llvm.initialize_native_target()
        llvm.initialize_native_asmprinter()
        target = llvm.Target.from_default_triple()
        self.target_machine = target.create_target_machine()
        backing = llvm.parse_assembly("")
        backing.triple = self.target_machine.triple
        self.engine = llvm.create_mcjit_compiler(backing, self.target_machine)
        self.pending: dict[str, llvm.ModuleRef] = {}
        self.loaded: set[str] = set()
        self.arities: dict[str, int] = {}

    def _prepare(self, unit: CompiledUnit) -> llvm.ModuleRef:
        try:
            module = llvm.parse_assembly(str(unit.module))
            module.triple = self.target_machine.triple
            module.data_layout = str(self.target_machine.target_data)
            module.verify()
        except RuntimeError as e:
            raise JITError(f"cannot load '{unit.name}': {e}") from e
        return module

    def add_unit(self, unit: CompiledUnit) -> None:
        """Makes a definition available for later calls.

        Declarations need no code and are accepted as-is.

        Raises:
            JITError: If `unit` is an anonymous expression (use `run`), or the
                name is already defined.
        """
        if unit.anonymous:
            raise JITError("anonymous expressions are run, not added")
        if not unit.is_definition:
            return
        if unit.name in self.pending or unit.name in self.loaded:
            raise JITError(f"function '{unit.name}' is already defined")
        self.pending[unit.name] = self._prepare(unit)
        self.arities[unit.name] = len(unit.function.args)

    def _collect(self, name: str, needed: dict[str, llvm.ModuleRef]) -> None:
        """Adds the pending modules `name` transitively depends on to `needed`."""
        if name in self.loaded or name in needed:
            return
        module = self.pending.get(name)
        if module is None:
            if llvm.address_of_symbol(name) is None:
                raise JITError(f"unresolved external function '{name}'")
            return
        needed[name] = module
        for dep in declared_functions(module):
            self._collect(dep, needed)

    def _load(self, names: list[str]) -> None:
        needed: dict[str, llvm.ModuleRef] = {}
        for name in names:
            self._collect(name, needed)
        for name, module in needed.items():
            self.engine.add_module(module)
            del self.pending[name]
            self.loaded.add(name)

    def run(self, unit: CompiledUnit) -> float:
        """Runs an anonymous expression wrapper and returns its value.

        The wrapper's module is removed from the engine afterwards.

        Raises:
            JITError: If `unit` is not an anonymous wrapper or references an
                unresolvable function.
        """
        if not unit.anonymous:
            raise JITError(f"'{unit.name}' is not a top-level expression")
        module = self._prepare(unit)
        self._load(declared_functions(module))
        self.engine.add_module(module)
        try:
            self.engine.finalize_object()
            address = self.engine.get_function_address(unit.name)
            fn = ctypes.CFUNCTYPE(ctypes.c_double)(address)
            return float(fn())
        finally:
            self.engine.remove_module(module)

    def call(self, name: str, *args: float) -> float:
        """Invokes a defined function by name.

        Raises:
            JITError: If `name` is not defined here or the argument count is wrong.
        """
        if name not in self.arities:
            raise JITError(f"unknown function '{name}'")
        arity = self.arities[name]
        if arity != len(args):
            raise JITError(f"'{name}' takes {arity} arguments, got {len(args)}")
        self._load([name])
        self.engine.finalize_object()
        address = self.engine.get_function_address(name)
        fn = ctypes.CFUNCTYPE(ctypes.c_double, *([ctypes.c_double] * arity))(address)
        return float(fn(*[float(arg) for arg in args]))


__all__ = ["JITEngine", "JITError", "declared_functions"]
