"""Plain-text rendering of the simulator console."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Collection, Mapping, Sequence

from .decode import decode_opcode
from .disasm import Mnemonic, disassemble
from .util import float_to_ubits, format_bits

_MASK32 = 0xFFFFFFFF
_REG_NUM = 32
_FREG_NUM = 32


def _rows(count: int, columns: int) -> int:
    return count // columns + (1 if count % columns else 0)


@dataclass
class Screen:
    """Terminal geometry and the layout derived from it."""

    width: int
    height: int
    col_num: int = field(init=False)
    code_window_len: int = field(init=False)

    def __post_init__(self) -> None:
        self.col_num = (self.width + 2) // 17
        if self.col_num < 1:
            raise ValueError("screen too narrow")
        rest = (
            self.height
            - _rows(_REG_NUM, self.col_num)
            - _rows(_FREG_NUM, self.col_num)
            - 12
        )
        self.code_window_len = max(0, rest // 2)

    def border(self, char: str, plus: bool = True) -> str:
        """A horizontal rule across all register columns, newline-terminated."""
        joint = " + " if plus else char * 3
        return joint.join(char * 14 for _ in range(self.col_num)) + "\n"


def render_status(
    binfile: str,
    infile: str | None,
    code_count: int,
    inst_count: int,
    elapsed: float,
    width: int,
) -> str:
    """The status line: files, instruction counts and elapsed time."""
    text = f"[{binfile}"
    if infile:
        text += f" < {infile}"
    text += f"] [{code_count:>6}/{inst_count:>11} instr] "
    minutes, seconds = divmod(max(0, int(elapsed)), 60)
    padding = width - (len(text) + len(str(minutes)) + 4)
    if padding >= 0:
        text += " " * padding + f"{minutes}:{seconds:02d}"
    length = max(0, width - 1)
    return text[:length].ljust(length)


def render_registers(screen: Screen, regs: Sequence[float], prefix: str) -> str:
    """A grid of register values in hex; prefix ``f`` shows float bit patterns."""
    columns = screen.col_num
    out: list[str] = []
    for i, value in enumerate(regs):
        word = float_to_ubits(value) if prefix == "f" else int(value) & _MASK32
        out.append(f"{prefix}{i:<2} 0x{word:08x}")
        out.append("\n" if i % columns + 1 == columns else " | ")
    i = len(regs)
    if i % columns:
        while i % columns + 1 != columns:
            out.append("               | ")
            i += 1
        out.append("\n")
    return "".join(out)


def render_code(
    screen: Screen,
    codes: Sequence[int],
    pc: int,
    breakpoints: Collection[int],
    table: Mapping[int, Mnemonic],
    assert_opcodes: Collection[int],
) -> list[tuple[str, bool]]:
    """Lines of code around ``pc``; each paired with whether it is the current one."""
    window = screen.code_window_len
    pc_idx = pc // 4
    max_idx = min(pc_idx + window, len(codes))
    lines: list[tuple[str, bool]] = []
    asserting = False
    for c in range(pc_idx - window, pc_idx + window):
        if c < 0 or c >= max_idx:
            lines.append(("          |", False))
            continue
        code = codes[c]
        mark = "b" if c * 4 in breakpoints else " "
        text = f"{mark} {c * 4:>7} | {format_bits(code)} | "
        if not asserting:
            size = max(0, screen.width - 49)
            text += disassemble(code, table)[:size].ljust(size)
        lines.append((text, c == pc_idx))
        if asserting:
            asserting = False
        elif decode_opcode(code) in assert_opcodes:
            asserting = True
    lines.append((screen.border("=", False).rstrip("\n"), False))
    return lines


def render_breakpoints(breakpoints: Mapping[int, int]) -> str:
    if not breakpoints:
        return "No breakpoint"
    return "".join(f"{pc}(delay {delay}), " for pc, delay in breakpoints.items())


def render_memory(memory: Sequence[int], idx: int) -> str:
    """Memory words within three of ``idx``, in hex."""
    size = len(memory)
    low = idx - 3 if idx >= 3 else 0
    high = min(idx + 3 if idx <= size - 3 else size, size - 1)
    return "\n".join(
        f"memory[{i}] = 0x{memory[i] & _MASK32:x}" for i in range(low, high + 1)
    )


def help_text() -> str:
    return (
        "run|r: run to the 'halt', reset: reset\n"
        "(break|b) [int]: set breakpoint, pb: show breakpoints, "
        "db [int]: delete breakpoint\n"
        "pm [int]: show memory\n"
        "(step|s) <int>: next instruction, prev|p: rewind to previous instruction\n"
        "log|l: dump statistics log, quit|q, help|h\n"
    )