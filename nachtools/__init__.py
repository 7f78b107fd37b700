"""MIPS COFF/NOFF tools, a disassembler, a MIPS interpreter, a directory table and stacks."""

__version__ = "0.1.0"

__all__ = [
    "boundedstack",
    "coff",
    "coff2flat",
    "coff2noff",
    "directory",
    "disassembler",
    "instructions",
    "interpreter",
    "stacks",
]