"""Textual disassembly of instruction words."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from .decode import decode_i, decode_j, decode_opcode, decode_r
from .util import sign_ext, to_int32


class OperandType(Enum):
    """Instruction format."""

    R = "R"
    I = "I"
    J = "J"
    N = "N"


class OperandField(Enum):
    """How one operand slot is shown: absent, integer register, immediate, float register."""

    N = "N"
    R = "R"
    I = "I"
    F = "F"


_NONE_FIELDS = (OperandField.N,) * 4


@dataclass(frozen=True)
class Mnemonic:
    """Assembly name, format and operand layout of one opcode."""

    mnemonic: str
    type: OperandType
    fields: tuple[OperandField, ...] = _NONE_FIELDS
    instruction: str | None = None

    @property
    def operation(self) -> str:
        """Name of the machine operation that carries out this opcode."""
        return self.instruction or self.mnemonic.replace(".", "_")


def _register(field: OperandField, index: int) -> str:
    if field is OperandField.R:
        return f" r{index:<2}"
    if field is OperandField.F:
        return f" f{index:<2}"
    return "  - "


def disassemble(inst: int, table: Mapping[int, Mnemonic]) -> str:
    """Render one instruction word; unknown opcodes give an empty string."""
    mnemo = table.get(decode_opcode(inst))
    if mnemo is None:
        return ""
    fields = mnemo.fields
    parts = [f"{mnemo.mnemonic:>7}"]
    if mnemo.type is OperandType.R:
        op = decode_r(inst)
        parts += [
            _register(fields[0], op.rs),
            _register(fields[1], op.rt),
            _register(fields[2], op.rd),
        ]
        parts.append(f" {op.shamt}" if fields[3] is OperandField.I else "  - ")
    elif mnemo.type is OperandType.I:
        op_i = decode_i(inst)
        parts += [_register(fields[0], op_i.rs), _register(fields[1], op_i.rt)]
        if fields[2] is OperandField.I:
            value = to_int32(sign_ext(op_i.immediate, 16))
            parts.append(f" {value}(0x{op_i.immediate:x})")
        else:
            parts.append("  - ")
    elif mnemo.type is OperandType.J:
        parts.append(f" {decode_j(inst).addr}")
    return "".join(parts)