from felisim.disasm import Mnemonic, OperandField, OperandType
from felisim.display import (
    Screen,
    help_text,
    render_breakpoints,
    render_code,
    render_memory,
    render_registers,
    render_status,
)
from felisim.util import format_bits

TABLE = {1: Mnemonic("add", OperandType.R, (OperandField.R,) * 3 + (OperandField.N,))}


def test_screen_layout():
    screen = Screen(80, 40)
    assert screen.col_num == 4
    assert screen.code_window_len == 6


def test_border_shape():
    screen = Screen(80, 40)
    plain = screen.border("=", False)
    assert plain.endswith("\n")
    assert set(plain.rstrip("\n")) == {"="}
    assert screen.border("-").count(" + ") == screen.col_num - 1


def test_status_line():
    line = render_status("prog.bin", "in.txt", 3, 7, 65, 80)
    assert len(line) == 79
    assert line.startswith("[prog.bin < in.txt]")
    assert line.endswith("1:05")


def test_registers_grid():
    screen = Screen(80, 40)
    text = render_registers(screen, [0] * 32, "r")
    assert text.count("\n") == 32 // screen.col_num
    assert "r0  0x00000000" in text
    ftext = render_registers(screen, [0.0, 1.0] + [0.0] * 30, "f")
    assert "f1  0x3f800000" in ftext


def test_code_window():
    screen = Screen(80, 40)
    codes = [1 << 26] * 20
    lines = render_code(screen, codes, 8, {8: 0}, TABLE, set())
    assert len(lines) == 2 * screen.code_window_len + 1
    current = [text for text, hot in lines if hot]
    assert len(current) == 1
    assert current[0].startswith("b ")
    assert format_bits(codes[2]) in current[0]


def test_breakpoints_text():
    assert render_breakpoints({}) == "No breakpoint"
    assert render_breakpoints({8: 0}) == "8(delay 0), "


def test_memory_window():
    memory = [0] * 10
    memory[2] = -1
    lines = render_memory(memory, 5).split("\n")
    assert len(lines) == 7
    assert lines[0] == "memory[2] = 0xffffffff"
    assert render_memory(memory, 9).split("\n")[-1].startswith("memory[9]")


def test_help():
    assert "(step|s) <int>" in help_text()