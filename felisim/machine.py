"""Architectural state and instruction semantics of the simulated processor."""

from __future__ import annotations

import io
import math
from collections import Counter
from typing import BinaryIO, Callable, Iterable

from .decode import decode_i, decode_j, decode_r
from .history import PreState
from .util import (
    bits_to_float,
    bitset,
    float_to_bits,
    float_to_ubits,
    format_bits,
    sign_ext,
    to_float32,
    to_int32,
)

REG_NUM = 32
FREG_NUM = 32
DEFAULT_MEMORY_NUM = 1_000_000
LINK_REGISTER = 31

_MASK32 = 0xFFFFFFFF
_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1


class MachineError(Exception):
    """Raised when a program does something the machine cannot carry out."""


class AssertionFailure(MachineError):
    """Raised by ``asrt``/``asrt_s`` when a register differs from the expected word."""

    def __init__(self, register: str, expected: int, actual: int) -> None:
        self.register = register
        self.expected = expected
        self.actual = actual
        super().__init__(
            "Assertion failed.\n"
            f"${register:<3} expected {format_bits(expected)}\n"
            f"     actually {format_bits(actual)}"
        )


_Handler = Callable[["Machine", int], PreState]
_HANDLERS: dict[str, _Handler] = {}


def _instruction(name: str) -> Callable[[_Handler], _Handler]:
    def register(func: _Handler) -> _Handler:
        _HANDLERS[name] = func
        return func

    return register


def _simm(immediate: int) -> int:
    """Sign-extended 16-bit immediate as a signed integer."""
    return to_int32(sign_ext(immediate, 16))


def _trunc_div(a: int, b: int) -> int:
    """Signed 32-bit division rounding toward zero."""
    if b == 0:
        raise MachineError("# Error: Division by zero")
    quotient = abs(a) // abs(b)
    return to_int32(quotient if (a < 0) == (b < 0) else -quotient)


def _fdiv(a: float, b: float) -> float:
    if b == 0.0:
        if a == 0.0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return to_float32(a / b)


def _fsqrt(a: float) -> float:
    if math.isnan(a) or a < 0.0:
        return math.nan
    return to_float32(math.sqrt(a))


def _nearbyint_int32(value: float) -> int:
    """Round half to even and convert to int32; unrepresentable gives INT32_MIN."""
    if not math.isfinite(value):
        return _INT32_MIN
    rounded = round(value)
    if not _INT32_MIN <= rounded <= _INT32_MAX:
        return _INT32_MIN
    return rounded


INSTRUCTIONS: frozenset[str]


class Machine:
    """Registers, memory and program of the processor, plus instruction execution."""

    def __init__(
        self,
        codes: Iterable[int] = (),
        memory_num: int = DEFAULT_MEMORY_NUM,
        infile: BinaryIO | None = None,
        outfile: BinaryIO | None = None,
        output_memory: bool = False,
        on_halt: Callable[[], None] | None = None,
    ) -> None:
        if memory_num < 0:
            raise ValueError("# Error: Invalid memory size")
        self.codes = [code & _MASK32 for code in codes]
        self.memory_num = memory_num
        self.infile = infile
        self.outfile: BinaryIO = outfile if outfile is not None else io.BytesIO()
        self.output_memory = output_memory
        self.on_halt = on_halt
        self.inst_count: Counter[str] = Counter()
        self.memory_access_count: Counter[int] = Counter()
        self.reset()

    # -- state management -------------------------------------------------

    def reset(self) -> None:
        """Zero registers, memory and counters; the program is kept."""
        self.pc = 0
        self.reg = [0] * REG_NUM
        self.freg = [0.0] * FREG_NUM
        self.memory = [0] * self.memory_num
        self.halted = False
        self.memory_idx_max = 0
        self.inst_count.clear()
        self.memory_access_count.clear()

    def restore(self, state: PreState) -> None:
        """Put back the values recorded in ``state``."""
        if state.pc is not None:
            self.pc = state.pc
        if state.gpreg is not None:
            idx, value = state.gpreg
            self.reg[idx] = value
        if state.freg is not None:
            idx, fvalue = state.freg
            self.freg[idx] = fvalue
        if state.mem is not None:
            idx, value = state.mem
            self.memory[idx] = value

    def check_memory_index(self, idx: int) -> int:
        """Validate a word index into memory and record the access."""
        if not 0 <= idx < self.memory_num:
            raise MachineError(f"# Error: Memory index out of range: {idx}")
        if self.output_memory:
            self.memory_idx_max = max(self.memory_idx_max, idx)
            self.memory_access_count[idx] += 1
        return idx

    def execute(self, name: str, inst: int) -> PreState:
        """Run one instruction by mnemonic and return what it overwrote."""
        try:
            handler = _HANDLERS[name]
        except KeyError:
            raise MachineError(f"# Error: Unknown instruction: {name}") from None
        self.inst_count[name] += 1
        return handler(self, inst & _MASK32)

    # -- helpers ----------------------------------------------------------

    def _advance(self, amount: int = 4) -> None:
        self.pc = (self.pc + amount) & _MASK32

    def _pre_pc(self) -> PreState:
        return PreState.for_pc(self.pc)

    def _pre_gpreg(self, idx: int) -> PreState:
        return PreState(pc=self.pc, gpreg=(idx, self.reg[idx]))

    def _pre_freg(self, idx: int) -> PreState:
        return PreState(pc=self.pc, freg=(idx, self.freg[idx]))

    def _pre_mem(self, idx: int) -> PreState:
        return PreState(pc=self.pc, mem=(idx, self.memory[idx]))

    def _word_index(self, base: int, offset: int) -> int:
        return self.check_memory_index(_trunc_div(to_int32(base + offset), 4))

    def _int_r(self, inst: int, op: Callable[[int, int], int]) -> PreState:
        operand = decode_r(inst)
        pre = self._pre_gpreg(operand.rd)
        self.reg[operand.rd] = to_int32(op(self.reg[operand.rs], self.reg[operand.rt]))
        self._advance()
        return pre

    def _int_i(self, inst: int, op: Callable[[int, int], int], signed: bool) -> PreState:
        operand = decode_i(inst)
        pre = self._pre_gpreg(operand.rt)
        imm = _simm(operand.immediate) if signed else operand.immediate
        self.reg[operand.rt] = to_int32(op(self.reg[operand.rs], imm))
        self._advance()
        return pre

    def _float_r(self, inst: int, op: Callable[[float, float], float]) -> PreState:
        operand = decode_r(inst)
        pre = self._pre_freg(operand.rd)
        self.freg[operand.rd] = to_float32(op(self.freg[operand.rs], self.freg[operand.rt]))
        self._advance()
        return pre

    def _float_i(self, inst: int, op: Callable[[float], float]) -> PreState:
        operand = decode_i(inst)
        pre = self._pre_freg(operand.rt)
        self.freg[operand.rt] = to_float32(op(self.freg[operand.rs]))
        self._advance()
        return pre

    def _branch(self, inst: int, condition: Callable[[int, int], bool], link: bool = False) -> PreState:
        operand = decode_i(inst)
        pre = self._pre_pc()
        if condition(self.reg[operand.rs], self.reg[operand.rt]):
            if link:
                pre = PreState(pc=self.pc, gpreg=(LINK_REGISTER, self.reg[LINK_REGISTER]))
                self.reg[LINK_REGISTER] = to_int32(self.pc + 4)
            self._advance(sign_ext(operand.immediate, 16) * 4)
        else:
            self._advance()
        return pre

    def _expected_word(self) -> int:
        idx = self.pc // 4 + 1
        if idx >= len(self.codes):
            raise MachineError("# Error: Assertion operand out of program range")
        return self.codes[idx]

    def _jump_target(self, addr: int) -> int:
        return ((self.pc & 0xF0000003) | (addr << 2)) & _MASK32

    # -- integer arithmetic and logic -------------------------------------

    @_instruction("add")
    def _add(self, inst: int) -> PreState:
        return self._int_r(inst, lambda a, b: a + b)

    @_instruction("sub")
    def _sub(self, inst: int) -> PreState:
        return self._int_r(inst, lambda a, b: a - b)

    @_instruction("mult")
    def _mult(self, inst: int) -> PreState:
        return self._int_r(inst, lambda a, b: a * b)

    @_instruction("div")
    def _div(self, inst: int) -> PreState:
        return self._int_r(inst, _trunc_div)

    @_instruction("and")
    def _and(self, inst: int) -> PreState:
        return self._int_r(inst, lambda a, b: a & b)

    @_instruction("or")
    def _or(self, inst: int) -> PreState:
        return self._int_r(inst, lambda a, b: a | b)

    @_instruction("xor")
    def _xor(self, inst: int) -> PreState:
        return self._int_r(inst, lambda a, b: a ^ b)

    @_instruction("nor")
    def _nor(self, inst: int) -> PreState:
        return self._int_r(inst, lambda a, b: ~(a | b))

    @_instruction("addi")
    def _addi(self, inst: int) -> PreState:
        return self._int_i(inst, lambda a, b: a + b, signed=True)

    @_instruction("multi")
    def _multi(self, inst: int) -> PreState:
        return self._int_i(inst, lambda a, b: a * b, signed=True)

    @_instruction("divi")
    def _divi(self, inst: int) -> PreState:
        return self._int_i(inst, _trunc_div, signed=True)

    @_instruction("andi")
    def _andi(self, inst: int) -> PreState:
        return self._int_i(inst, lambda a, b: a & b, signed=False)

    @_instruction("ori")
    def _ori(self, inst: int) -> PreState:
        return self._int_i(inst, lambda a, b: a | b, signed=False)

    @_instruction("xori")
    def _xori(self, inst: int) -> PreState:
        return self._int_i(inst, lambda a, b: a ^ b, signed=False)

    @_instruction("lui")
    def _lui(self, inst: int) -> PreState:
        operand = decode_i(inst)
        pre = self._pre_gpreg(operand.rt)
        self._advance()
        self.reg[operand.rt] = to_int32(operand.immediate << 16)
        return pre

    @_instruction("sll")
    def _sll(self, inst: int) -> PreState:
        operand = decode_r(inst)
        pre = self._pre_gpreg(operand.rd)
        self.reg[operand.rd] = to_int32(self.reg[operand.rs] << operand.shamt)
        self._advance()
        return pre

    @_instruction("srl")
    def _srl(self, inst: int) -> PreState:
        operand = decode_r(inst)
        pre = self._pre_gpreg(operand.rd)
        self.reg[operand.rd] = to_int32((self.reg[operand.rs] & _MASK32) >> operand.shamt)
        self._advance()
        return pre

    @_instruction("sra")
    def _sra(self, inst: int) -> PreState:
        operand = decode_r(inst)
        pre = self._pre_gpreg(operand.rd)
        self.reg[operand.rd] = to_int32(self.reg[operand.rs] >> operand.shamt)
        self._advance()
        return pre

    # -- control flow -----------------------------------------------------

    @_instruction("beq")
    def _beq(self, inst: int) -> PreState:
        return self._branch(inst, lambda a, b: a == b)

    @_instruction("bgez")
    def _bgez(self, inst: int) -> PreState:
        return self._branch(inst, lambda a, _: a >= 0)

    @_instruction("bgtz")
    def _bgtz(self, inst: int) -> PreState:
        return self._branch(inst, lambda a, _: a > 0)

    @_instruction("blez")
    def _blez(self, inst: int) -> PreState:
        return self._branch(inst, lambda a, _: a <= 0)

    @_instruction("bltz")
    def _bltz(self, inst: int) -> PreState:
        return self._branch(inst, lambda a, _: a < 0)

    @_instruction("bgezal")
    def _bgezal(self, inst: int) -> PreState:
        return self._branch(inst, lambda a, _: a >= 0, link=True)

    @_instruction("bltzal")
    def _bltzal(self, inst: int) -> PreState:
        return self._branch(inst, lambda a, _: a < 0, link=True)

    @_instruction("j")
    def _j(self, inst: int) -> PreState:
        operand = decode_j(inst)
        pre = self._pre_pc()
        self.pc = self._jump_target(operand.addr)
        return pre

    @_instruction("jal")
    def _jal(self, inst: int) -> PreState:
        operand = decode_j(inst)
        pre = self._pre_gpreg(LINK_REGISTER)
        self.reg[LINK_REGISTER] = to_int32(self.pc + 4)
        self.pc = self._jump_target(operand.addr)
        return pre

    @_instruction("jalr")
    def _jalr(self, inst: int) -> PreState:
        operand = decode_i(inst)
        pre = self._pre_gpreg(operand.rt)
        self.reg[operand.rt] = to_int32(self.pc + 4)
        self.pc = self.reg[operand.rs] & _MASK32
        return pre

    @_instruction("jr")
    def _jr(self, inst: int) -> PreState:
        operand = decode_i(inst)
        pre = self._pre_pc()
        self.pc = self.reg[operand.rs] & _MASK32
        return pre

    @_instruction("nop")
    def _nop(self, inst: int) -> PreState:
        pre = self._pre_pc()
        self._advance()
        return pre

    @_instruction("halt")
    def _halt(self, inst: int) -> PreState:
        self.halted = True
        self.outfile.flush()
        if self.on_halt is not None:
            self.on_halt()
        return self._pre_pc()

    # -- memory -----------------------------------------------------------

    @_instruction("lw")
    def _lw(self, inst: int) -> PreState:
        operand = decode_i(inst)
        pre = self._pre_gpreg(operand.rt)
        idx = self._word_index(self.reg[operand.rs], _simm(operand.immediate))
        self.reg[operand.rt] = self.memory[idx]
        self._advance()
        return pre

    @_instruction("lwc1")
    def _lwc1(self, inst: int) -> PreState:
        operand = decode_i(inst)
        pre = self._pre_freg(operand.rt)
        idx = self._word_index(self.reg[operand.rs], _simm(operand.immediate))
        self.freg[operand.rt] = bits_to_float(self.memory[idx])
        self._advance()
        return pre

    @_instruction("lwo")
    def _lwo(self, inst: int) -> PreState:
        operand = decode_r(inst)
        pre = self._pre_gpreg(operand.rd)
        idx = self._word_index(self.reg[operand.rs], self.reg[operand.rt])
        self.reg[operand.rd] = self.memory[idx]
        self._advance()
        return pre

    @_instruction("lwoc1")
    def _lwoc1(self, inst: int) -> PreState:
        operand = decode_r(inst)
        pre = self._pre_freg(operand.rd)
        idx = self._word_index(self.reg[operand.rs], self.reg[operand.rt])
        self.freg[operand.rd] = bits_to_float(self.memory[idx])
        self._advance()
        return pre

    @_instruction("sw")
    def _sw(self, inst: int) -> PreState:
        operand = decode_i(inst)
        idx = self._word_index(self.reg[operand.rt], _simm(operand.immediate))
        pre = self._pre_mem(idx)
        self.memory[idx] = self.reg[operand.rs]
        self._advance()
        return pre

    @_instruction("swc1")
    def _swc1(self, inst: int) -> PreState:
        operand = decode_i(inst)
        idx = self._word_index(self.reg[operand.rt], _simm(operand.immediate))
        pre = self._pre_mem(idx)
        self.memory[idx] = float_to_bits(self.freg[operand.rs])
        self._advance()
        return pre

    @_instruction("swo")
    def _swo(self, inst: int) -> PreState:
        operand = decode_r(inst)
        idx = self._word_index(self.reg[operand.rt], self.reg[operand.rd])
        pre = self._pre_mem(idx)
        self.memory[idx] = self.reg[operand.rs]
        self._advance()
        return pre

    @_instruction("swoc1")
    def _swoc1(self, inst: int) -> PreState:
        operand = decode_r(inst)
        idx = self._word_index(self.reg[operand.rt], self.reg[operand.rd])
        pre = self._pre_mem(idx)
        self.memory[idx] = float_to_bits(self.freg[operand.rs])
        self._advance()
        return pre

    # -- floating point ---------------------------------------------------

    @_instruction("add_s")
    def _add_s(self, inst: int) -> PreState:
        return self._float_r(inst, lambda a, b: a + b)

    @_instruction("sub_s")
    def _sub_s(self, inst: int) -> PreState:
        return self._float_r(inst, lambda a, b: a - b)

    @_instruction("mul_s")
    def _mul_s(self, inst: int) -> PreState:
        return self._float_r(inst, lambda a, b: a * b)

    @_instruction("div_s")
    def _div_s(self, inst: int) -> PreState:
        return self._float_r(inst, _fdiv)

    @_instruction("abs_s")
    def _abs_s(self, inst: int) -> PreState:
        return self._float_i(inst, abs)

    @_instruction("neg_s")
    def _neg_s(self, inst: int) -> PreState:
        return self._float_i(inst, lambda a: -a)

    @_instruction("mov_s")
    def _mov_s(self, inst: int) -> PreState:
        return self._float_i(inst, lambda a: a)

    @_instruction("sqrt_s")
    def _sqrt_s(self, inst: int) -> PreState:
        return self._float_i(inst, _fsqrt)

    @_instruction("cvt_s_w")
    def _cvt_s_w(self, inst: int) -> PreState:
        return self._float_i(inst, lambda a: float(float_to_bits(a)))

    @_instruction("cvt_w_s")
    def _cvt_w_s(self, inst: int) -> PreState:
        return self._float_i(inst, lambda a: bits_to_float(_nearbyint_int32(a)))

    @_instruction("mfc1")
    def _mfc1(self, inst: int) -> PreState:
        operand = decode_i(inst)
        pre = self._pre_gpreg(operand.rt)
        self.reg[operand.rt] = float_to_bits(self.freg[operand.rs])
        self._advance()
        return pre

    @_instruction("mtc1")
    def _mtc1(self, inst: int) -> PreState:
        operand = decode_i(inst)
        pre = self._pre_freg(operand.rt)
        self.freg[operand.rt] = bits_to_float(self.reg[operand.rs])
        self._advance()
        return pre

    # -- input, output and assertions -------------------------------------

    @_instruction("in")
    def _in(self, inst: int) -> PreState:
        operand = decode_r(inst)
        pre = self._pre_pc()
        if self.infile is None:
            raise MachineError("# Error: Input file not opened")
        data = self.infile.read(1)
        if not data:
            raise MachineError("# Error: Input file reached EOF")
        self.reg[operand.rd] = to_int32((self.reg[operand.rd] & ~0xFF) | data[0])
        self._advance()
        return pre

    @_instruction("out")
    def _out(self, inst: int) -> PreState:
        operand = decode_r(inst)
        pre = self._pre_pc()
        self.outfile.write(bytes([self.reg[operand.rs] & 0xFF]))
        self._advance()
        return pre

    @_instruction("asrt")
    def _asrt(self, inst: int) -> PreState:
        rs = bitset(inst, 6, 11)
        actual = self.reg[rs] & _MASK32
        expected = self._expected_word()
        if actual != expected:
            raise AssertionFailure(f"r{rs}", expected, actual)
        pre = self._pre_pc()
        self._advance(8)
        return pre

    @_instruction("asrt_s")
    def _asrt_s(self, inst: int) -> PreState:
        rs = bitset(inst, 6, 11)
        actual = float_to_ubits(self.freg[rs])
        expected = self._expected_word()
        if actual != expected:
            raise AssertionFailure(f"f{rs}", expected, actual)
        pre = self._pre_pc()
        self._advance(8)
        return pre


INSTRUCTIONS = frozenset(_HANDLERS)