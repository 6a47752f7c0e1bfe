"""Kaleido: a small expression language compiled to LLVM IR."""

__version__ = "0.1.0"
