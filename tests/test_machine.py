import io
import math

import pytest

from felisim.history import PreState
from felisim.machine import INSTRUCTIONS, AssertionFailure, Machine, MachineError
from felisim.util import float_to_bits, float_to_ubits, to_float32


def r_word(rs=0, rt=0, rd=0, shamt=0):
    return (rs << 21) | (rt << 16) | (rd << 11) | (shamt << 6)


def i_word(rs=0, rt=0, imm=0):
    return (rs << 21) | (rt << 16) | (imm & 0xFFFF)


def j_word(addr):
    return addr & 0x1FFFFF


@pytest.fixture
def machine():
    return Machine(memory_num=64)


def test_add_records_previous_state(machine):
    machine.reg[1] = 7
    machine.reg[2] = 5
    state = machine.execute("add", r_word(1, 2, 3))
    assert machine.reg[3] == 7 + 5
    assert machine.pc == 4
    assert state == PreState(pc=0, gpreg=(3, 0))


def test_add_wraps_to_int32(machine):
    machine.reg[1] = 0x7FFFFFFF
    machine.reg[2] = 1
    machine.execute("add", r_word(1, 2, 3))
    assert machine.reg[3] == -0x80000000


@pytest.mark.parametrize(
    "name, a, b, expected",
    [
        ("sub", 10, 3, 10 - 3),
        ("mult", 6, -7, 6 * -7),
        ("and", 0b1100, 0b1010, 0b1100 & 0b1010),
        ("or", 0b1100, 0b1010, 0b1100 | 0b1010),
        ("xor", 0b1100, 0b1010, 0b1100 ^ 0b1010),
        ("nor", 0, 0, -1),
    ],
)
def test_register_operations(machine, name, a, b, expected):
    machine.reg[1] = a
    machine.reg[2] = b
    machine.execute(name, r_word(1, 2, 3))
    assert machine.reg[3] == expected


def test_div_truncates_toward_zero(machine):
    machine.reg[1] = -7
    machine.reg[2] = 2
    machine.execute("div", r_word(1, 2, 3))
    assert machine.reg[3] == -3
    machine.reg[4] = 7
    machine.execute("divi", i_word(4, 5, -2))
    assert machine.reg[5] == -3


def test_div_by_zero_raises(machine):
    machine.reg[1] = 1
    with pytest.raises(MachineError):
        machine.execute("div", r_word(1, 2, 3))


def test_addi_sign_extends(machine):
    machine.reg[1] = 10
    machine.execute("addi", i_word(1, 2, 0xFFFF))
    assert machine.reg[2] == 10 - 1


def test_logical_immediates_zero_extend(machine):
    machine.reg[1] = -1
    machine.execute("andi", i_word(1, 2, 0xFFFF))
    assert machine.reg[2] == 0xFFFF
    machine.execute("ori", i_word(0, 3, 0x8000))
    assert machine.reg[3] == 0x8000
    machine.execute("xori", i_word(3, 4, 0x8000))
    assert machine.reg[4] == 0


def test_lui_places_immediate_in_upper_half(machine):
    machine.execute("lui", i_word(0, 2, 0x1234))
    assert (machine.reg[2] >> 16) & 0xFFFF == 0x1234
    assert machine.reg[2] & 0xFFFF == 0
    assert machine.pc == 4


def test_shifts(machine):
    machine.reg[1] = -16
    machine.execute("sra", r_word(1, 0, 2, 2))
    assert machine.reg[2] == -4
    machine.reg[3] = -1
    machine.execute("srl", r_word(3, 0, 4, 28))
    assert machine.reg[4] == 0xF
    machine.reg[5] = 1
    machine.execute("sll", r_word(5, 0, 6, 31))
    assert machine.reg[6] == -0x80000000


@pytest.mark.parametrize(
    "name, rs_value, rt_value, taken",
    [
        ("beq", 3, 3, True),
        ("beq", 3, 4, False),
        ("bgez", 0, 0, True),
        ("bgez", -1, 0, False),
        ("bgtz", 0, 0, False),
        ("bgtz", 1, 0, True),
        ("blez", 0, 0, True),
        ("blez", 1, 0, False),
        ("bltz", -1, 0, True),
        ("bltz", 0, 0, False),
    ],
)
def test_branches(machine, name, rs_value, rt_value, taken):
    machine.pc = 40
    machine.reg[1] = rs_value
    machine.reg[2] = rt_value
    state = machine.execute(name, i_word(1, 2, -3))
    assert machine.pc == (40 - 3 * 4 if taken else 40 + 4)
    assert state == PreState(pc=40)


def test_branch_and_link_taken(machine):
    machine.pc = 40
    machine.reg[1] = -5
    machine.reg[31] = 99
    state = machine.execute("bltzal", i_word(1, 0, 2))
    assert machine.reg[31] == 40 + 4
    assert machine.pc == 40 + 2 * 4
    assert state == PreState(pc=40, gpreg=(31, 99))


def test_branch_and_link_not_taken(machine):
    machine.pc = 40
    machine.reg[1] = -5
    machine.reg[31] = 99
    state = machine.execute("bgezal", i_word(1, 0, 2))
    assert machine.reg[31] == 99
    assert machine.pc == 44
    assert state.gpreg is None


def test_jumps(machine):
    machine.pc = 0x10000000
    machine.execute("j", j_word(5))
    assert machine.pc == 0x10000000 | (5 << 2)
    old = machine.pc
    state = machine.execute("jal", j_word(9))
    assert machine.reg[31] == old + 4
    assert machine.pc == 0x10000000 | (9 << 2)
    assert state.gpreg == (31, 0)


def test_jalr_and_jr(machine):
    machine.pc = 8
    machine.reg[1] = 100
    machine.execute("jalr", i_word(1, 2))
    assert machine.reg[2] == 8 + 4
    assert machine.pc == 100
    machine.execute("jr", i_word(2))
    assert machine.pc == 8 + 4


def test_store_then_load(machine):
    machine.reg[1] = 12
    machine.reg[2] = -42
    state = machine.execute("sw", i_word(2, 1, 4))
    assert machine.memory[(12 + 4) // 4] == -42
    assert state == PreState(pc=0, mem=((12 + 4) // 4, 0))
    machine.execute("lw", i_word(1, 3, 4))
    assert machine.reg[3] == -42


def test_indexed_store_then_load(machine):
    machine.reg[1] = 77
    machine.reg[2] = 8
    machine.reg[3] = 12
    machine.execute("swo", r_word(1, 2, 3))
    assert machine.memory[(8 + 12) // 4] == 77
    machine.execute("lwo", r_word(2, 3, 4))
    assert machine.reg[4] == 77


def test_float_store_then_load(machine):
    machine.freg[1] = 1.5
    machine.reg[5] = 16
    machine.execute("swc1", i_word(1, 5, 0))
    assert machine.memory[4] == float_to_bits(1.5)
    machine.execute("lwc1", i_word(5, 2, 0))
    assert machine.freg[2] == 1.5
    machine.reg[6] = 4
    machine.reg[7] = 4
    machine.execute("swoc1", r_word(1, 6, 7))
    machine.execute("lwoc1", r_word(6, 7, 3))
    assert machine.freg[3] == 1.5


def test_address_truncates_toward_zero(machine):
    machine.memory[0] = 123
    machine.reg[1] = -3
    machine.execute("lw", i_word(1, 2, 0))
    assert machine.reg[2] == 123


@pytest.mark.parametrize("base, imm", [(64 * 4, 0), (0, -4)])
def test_memory_out_of_range(machine, base, imm):
    machine.reg[1] = base
    with pytest.raises(MachineError, match="out of range"):
        machine.execute("lw", i_word(1, 2, imm))


def test_memory_access_statistics():
    m = Machine(memory_num=16, output_memory=True)
    for idx in (5, 3, 5):
        assert m.check_memory_index(idx) == idx
    assert m.memory_access_count[5] == 2
    assert m.memory_access_count[3] == 1
    assert m.memory_idx_max == 5


def test_float_arithmetic(machine):
    machine.freg[1] = 1.5
    machine.freg[2] = 2.25
    machine.execute("add_s", r_word(1, 2, 3))
    assert machine.freg[3] == 1.5 + 2.25
    machine.execute("sub_s", r_word(2, 1, 4))
    assert machine.freg[4] == 2.25 - 1.5
    machine.execute("mul_s", r_word(1, 2, 5))
    assert machine.freg[5] == 1.5 * 2.25
    machine.execute("sqrt_s", i_word(2, 6))
    assert machine.freg[6] == 1.5


def test_float_results_are_single_precision(machine):
    machine.freg[1] = to_float32(0.1)
    machine.freg[2] = to_float32(0.2)
    machine.execute("add_s", r_word(1, 2, 3))
    assert machine.freg[3] == to_float32(machine.freg[3])
    assert machine.freg[3] == pytest.approx(0.3, rel=1e-6)


def test_float_division_by_zero(machine):
    machine.freg[1] = -2.0
    machine.execute("div_s", r_word(1, 2, 3))
    assert machine.freg[3] == -math.inf
    machine.execute("div_s", r_word(2, 2, 4))
    assert math.isnan(machine.freg[4])


def test_float_unary(machine):
    machine.freg[1] = -2.5
    machine.execute("abs_s", i_word(1, 2))
    machine.execute("neg_s", i_word(1, 3))
    machine.execute("mov_s", i_word(1, 4))
    assert machine.freg[2] == 2.5
    assert machine.freg[3] == 2.5
    assert machine.freg[4] == -2.5
    machine.execute("sqrt_s", i_word(1, 5))
    assert math.isnan(machine.freg[5])


def test_move_between_register_files(machine):
    machine.reg[1] = float_to_bits(-2.5)
    machine.execute("mtc1", i_word(1, 2))
    assert machine.freg[2] == -2.5
    machine.execute("mfc1", i_word(2, 3))
    assert machine.reg[3] == machine.reg[1]


@pytest.mark.parametrize("value, expected", [(2.5, 2), (3.5, 4), (-1.5, -2)])
def test_cvt_w_s_rounds_half_to_even(machine, value, expected):
    machine.freg[1] = value
    machine.execute("cvt_w_s", i_word(1, 2))
    assert float_to_bits(machine.freg[2]) == expected


def test_cvt_s_w_roundtrip(machine):
    machine.reg[1] = -7
    machine.execute("mtc1", i_word(1, 2))
    machine.execute("cvt_s_w", i_word(2, 3))
    assert machine.freg[3] == -7.0
    machine.execute("cvt_w_s", i_word(3, 4))
    assert float_to_bits(machine.freg[4]) == -7


def test_in_reads_low_byte():
    m = Machine(memory_num=4, infile=io.BytesIO(b"A"))
    m.reg[1] = 0x1200
    state = m.execute("in", r_word(rd=1))
    assert m.reg[1] == 0x1200 | ord("A")
    assert state == PreState(pc=0)
    with pytest.raises(MachineError, match="EOF"):
        m.execute("in", r_word(rd=1))


def test_in_without_input_file(machine):
    with pytest.raises(MachineError, match="not opened"):
        machine.execute("in", r_word(rd=1))


def test_out_writes_byte():
    out = io.BytesIO()
    m = Machine(memory_num=4, outfile=out)
    m.reg[1] = 0x100 | ord("z")
    m.execute("out", r_word(rs=1))
    assert out.getvalue() == b"z"
    assert m.pc == 4


def test_asrt_passes_and_skips_expected_word():
    m = Machine(codes=[0, 0x1234], memory_num=4)
    m.reg[3] = 0x1234
    state = m.execute("asrt", r_word(rs=3))
    assert m.pc == 8
    assert state == PreState(pc=0)


def test_asrt_failure_reports_values():
    m = Machine(codes=[0, 0x1234], memory_num=4)
    m.reg[3] = 1
    with pytest.raises(AssertionFailure) as info:
        m.execute("asrt", r_word(rs=3))
    assert info.value.register == "r3"
    assert info.value.expected == 0x1234
    assert info.value.actual == 1


def test_asrt_s_compares_float_bits():
    m = Machine(codes=[0, float_to_ubits(1.0)], memory_num=4)
    m.freg[1] = 1.0
    m.execute("asrt_s", r_word(rs=1))
    assert m.pc == 8
    m.pc = 0
    m.freg[1] = 2.0
    with pytest.raises(AssertionFailure) as info:
        m.execute("asrt_s", r_word(rs=1))
    assert info.value.register == "f1"


def test_halt_stops_without_advancing():
    calls = []
    m = Machine(memory_num=4, on_halt=lambda: calls.append(True))
    m.pc = 12
    state = m.execute("halt", 0)
    assert m.halted
    assert m.pc == 12
    assert calls == [True]
    assert state == PreState(pc=12)


def test_nop_advances(machine):
    state = machine.execute("nop", 0)
    assert machine.pc == 4
    assert state == PreState(pc=0)


def test_restore_undoes_instructions(machine):
    machine.reg[1] = 3
    machine.reg[2] = 4
    state = machine.execute("add", r_word(1, 2, 3))
    machine.restore(state)
    assert machine.reg[3] == 0
    assert machine.pc == 0
    machine.reg[1] = 0
    machine.reg[2] = 9
    machine.memory[0] = 5
    state = machine.execute("sw", i_word(2, 1, 0))
    assert machine.memory[0] == 9
    machine.restore(state)
    assert machine.memory[0] == 5


def test_reset_clears_state(machine):
    machine.reg[1] = 5
    machine.freg[2] = 1.0
    machine.memory[3] = 7
    machine.execute("nop", 0)
    machine.reset()
    assert machine.pc == 0
    assert machine.reg == [0] * 32
    assert machine.freg == [0.0] * 32
    assert machine.memory[3] == 0
    assert sum(machine.inst_count.values()) == 0


def test_unknown_instruction(machine):
    with pytest.raises(MachineError):
        machine.execute("bogus", 0)


def test_instruction_counts(machine):
    machine.execute("nop", 0)
    machine.execute("nop", 0)
    machine.execute("add", 0)
    assert machine.inst_count["nop"] == 2
    assert machine.inst_count["add"] == 1


@pytest.mark.parametrize(
    "name", ["add", "sub", "and", "or", "xor", "nor", "mult", "sll", "srl", "nop"]
)
def test_listed_instructions_execute(name):
    m = Machine(memory_num=4)
    assert name in INSTRUCTIONS
    m.execute(name, 0)
    assert m.inst_count[name] == 1
    assert m.pc == 4


def test_negative_memory_size_rejected():
    with pytest.raises(ValueError):
        Machine(memory_num=-1)