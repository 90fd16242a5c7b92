"""Simulator, disassembler and debugger for a 32-bit MIPS-like processor."""

__version__ = "0.1.0"