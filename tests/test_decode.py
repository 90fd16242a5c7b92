import pytest

from felisim.decode import (
    OperandI,
    OperandJ,
    OperandR,
    decode_i,
    decode_j,
    decode_opcode,
    decode_r,
)


def _r_word(opcode, rs, rt, rd, shamt):
    return (opcode << 26) | (rs << 21) | (rt << 16) | (rd << 11) | (shamt << 6)


def _i_word(opcode, rs, rt, imm):
    return (opcode << 26) | (rs << 21) | (rt << 16) | imm


def _j_word(opcode, rs, addr):
    return (opcode << 26) | (rs << 21) | addr


@pytest.mark.parametrize("opcode", [0, 1, 17, 42, 63])
def test_decode_opcode(opcode):
    assert decode_opcode(_r_word(opcode, 31, 31, 31, 31)) == opcode


@pytest.mark.parametrize(
    "fields", [(3, 1, 2, 4, 5), (63, 31, 0, 31, 0), (0, 0, 0, 0, 0), (12, 7, 30, 15, 31)]
)
def test_decode_r(fields):
    opcode, rs, rt, rd, shamt = fields
    inst = _r_word(*fields) | 0x3F
    assert decode_r(inst) == OperandR(rs, rt, rd, shamt)
    assert decode_opcode(inst) == opcode


@pytest.mark.parametrize("fields", [(8, 1, 2, 0xFFFF), (5, 31, 17, 0), (63, 0, 31, 0x1234)])
def test_decode_i(fields):
    opcode, rs, rt, imm = fields
    assert decode_i(_i_word(*fields)) == OperandI(rs, rt, imm)


@pytest.mark.parametrize("fields", [(2, 0, 0x1FFFFF), (3, 9, 100), (63, 31, 0)])
def test_decode_j(fields):
    opcode, rs, addr = fields
    assert decode_j(_j_word(*fields)) == OperandJ(rs, addr)


def test_fields_do_not_bleed():
    inst = 0xFFFFFFFF
    r = decode_r(inst)
    assert max(r.rs, r.rt, r.rd, r.shamt) == 31
    i = decode_i(inst)
    assert i.immediate == 0xFFFF
    assert decode_opcode(inst) == 63


def test_operands_are_immutable():
    op = decode_i(_i_word(1, 2, 3, 4))
    assert op == OperandI(2, 3, 4)
    with pytest.raises(AttributeError):
        op.rs = 5
    assert op.rs == 2