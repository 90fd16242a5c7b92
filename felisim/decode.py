"""Instruction word decoding into operand fields.

Bit positions count from the most significant bit (0) to the least (31).
"""

from __future__ import annotations

from dataclasses import dataclass

from .util import bitset


@dataclass(frozen=True)
class OperandR:
    """R-type: opcode(6) rs(5) rt(5) rd(5) shamt(5) unused(6)."""

    rs: int
    rt: int
    rd: int
    shamt: int


@dataclass(frozen=True)
class OperandI:
    """I-type: opcode(6) rs(5) rt(5) immediate(16)."""

    rs: int
    rt: int
    immediate: int


@dataclass(frozen=True)
class OperandJ:
    """J-type: opcode(6) rs(5) addr(21)."""

    rs: int
    addr: int


def decode_opcode(inst: int) -> int:
    """Return the 6-bit opcode of an instruction word."""
    return bitset(inst, 0, 6)


def decode_r(inst: int) -> OperandR:
    return OperandR(
        rs=bitset(inst, 6, 11),
        rt=bitset(inst, 11, 16),
        rd=bitset(inst, 16, 21),
        shamt=bitset(inst, 21, 26),
    )


def decode_i(inst: int) -> OperandI:
    return OperandI(
        rs=bitset(inst, 6, 11),
        rt=bitset(inst, 11, 16),
        immediate=bitset(inst, 16, 32),
    )


def decode_j(inst: int) -> OperandJ:
    return OperandJ(rs=bitset(inst, 6, 11), addr=bitset(inst, 11, 32))