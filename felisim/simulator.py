"""The simulator: program loading, stepping, breakpoints, history and logs."""

from __future__ import annotations

import re
import struct
import time
from pathlib import Path
from typing import BinaryIO, Mapping

from .decode import decode_opcode
from .disasm import Mnemonic, disassemble
from .display import (
    Screen,
    help_text,
    render_breakpoints,
    render_code,
    render_memory,
    render_registers,
    render_status,
)
from .history import PreState, StateHistory
from .machine import DEFAULT_MEMORY_NUM, Machine, MachineError
from .util import float_to_ubits

_MASK32 = 0xFFFFFFFF
_INT = re.compile(r"\s*([+-]?\d+)")
_BREAK_ERROR = "# Error: Invalid breakpoint format"
_STEP_ERROR = "# Error: Invalid step format"


def load_program(path: str | Path) -> list[int]:
    """Read little-endian 32-bit instruction words; a trailing partial word is ignored."""
    data = Path(path).read_bytes()
    usable = len(data) - len(data) % 4
    return [word for (word,) in struct.iter_unpack("<I", data[:usable])]


def _scan_ints(text: str, limit: int) -> list[int]:
    values: list[int] = []
    pos = 0
    while len(values) < limit:
        match = _INT.match(text, pos)
        if not match:
            break
        values.append(int(match.group(1)))
        pos = match.end()
    return values


class Simulator:
    """Drives a :class:`Machine` over a loaded program."""

    def __init__(
        self,
        codes: list[int],
        table: Mapping[int, Mnemonic],
        *,
        memory_num: int = DEFAULT_MEMORY_NUM,
        infile: BinaryIO | None = None,
        outfile: BinaryIO | None = None,
        interactive: bool = True,
        output_memory: bool = False,
        prev_disable: bool = False,
        binfile_name: str = "",
        infile_name: str = "",
        log_directory: str | Path | None = ".",
    ) -> None:
        self.table = dict(table)
        self.interactive = interactive
        self.prev_disable = prev_disable or not interactive
        self.binfile_name = binfile_name
        self.infile_name = infile_name if infile is not None else ""
        self.log_directory = log_directory
        self.machine = Machine(
            codes,
            memory_num=memory_num,
            infile=infile,
            outfile=outfile,
            output_memory=output_memory,
            on_halt=self._on_halt,
        )
        self.breakpoints: dict[int, int] = {}
        self.history = StateHistory()
        self.pc_called_count = [0] * len(self.machine.codes)
        self.dynamic_inst_count = 0
        self.running = False
        self.quit_requested = False
        self.start_time = time.monotonic()

    @property
    def codes(self) -> list[int]:
        return self.machine.codes

    def _on_halt(self) -> None:
        self.running = False
        if self.log_directory is not None:
            self.dump_log(self.log_directory)

    def step(self) -> PreState | None:
        """Execute the instruction at the program counter; nothing when halted."""
        machine = self.machine
        if machine.halted:
            return None
        pc_idx = machine.pc // 4
        if pc_idx >= len(machine.codes):
            raise MachineError("# Error: Program counter out of range")
        inst = machine.codes[pc_idx]
        mnemo = self.table.get(decode_opcode(inst))
        if mnemo is None:
            raise MachineError(f"# Error: Unknown opcode: {decode_opcode(inst)}")
        pre = machine.execute(mnemo.operation, inst)

        if self.prev_disable or self.history.at_latest():
            if not self.prev_disable:
                self.history.push(pre)
            self.pc_called_count[pc_idx] += 1
            self.dynamic_inst_count += 1
        else:
            self.history.replay()

        if self.interactive:
            delay = self.breakpoints.get(machine.pc)
            if delay is not None:
                if delay == 0:
                    self.running = False
                else:
                    self.breakpoints[machine.pc] = delay - 1
        return pre

    def run(self) -> None:
        """Execute until the program halts."""
        self.start_time = time.monotonic()
        self.running = True
        while not self.machine.halted:
            self.step()
        self.running = False

    def _run_until_pause(self) -> None:
        self.running = True
        while self.running and not self.machine.halted:
            self.step()
        self.running = False

    def _steps(self, count: int) -> None:
        for _ in range(count):
            if self.machine.halted:
                break
            self.step()

    def set_breakpoint(self, pc: int, delay: int = 0) -> None:
        """Break at ``pc`` after passing it ``delay`` times."""
        if delay < 0:
            raise ValueError(_BREAK_ERROR)
        self.breakpoints[pc] = delay

    def delete_breakpoint(self, pc: int) -> None:
        self.breakpoints.pop(pc, None)

    def _input_breakpoint(self, text: str) -> str:
        values = _scan_ints(text, 2)
        if len(values) == 1:
            self.set_breakpoint(values[0])
        elif len(values) == 2 and values[1] > 0:
            self.set_breakpoint(values[0], values[1])
        else:
            return _BREAK_ERROR
        return ""

    def rewind(self) -> None:
        """Undo the most recent instruction still held in history."""
        if not self.history.can_rewind():
            raise MachineError("# Error: Out of saved history")
        self.machine.restore(self.history.rewind())
        self.machine.halted = False

    def reset(self) -> None:
        """Back to the state right after loading the program."""
        self.machine.reset()
        self.start_time = time.monotonic()
        self.running = False
        self.breakpoints.clear()
        self.dynamic_inst_count = 0
        self.pc_called_count = [0] * len(self.machine.codes)
        self.history.clear()

    def command(self, line: str) -> str:
        """Carry out one console command and return any text it produces."""
        text = line.rstrip("\r\n")[:63]
        halted = self.machine.halted
        if text in ("run", "r") and not halted:
            self._run_until_pause()
            return ""
        if text == "reset":
            self.reset()
            return ""
        if text.startswith("break"):
            return self._input_breakpoint(text[5:])
        if text.startswith("b"):
            return self._input_breakpoint(text[1:])
        if text == "pb":
            return render_breakpoints(self.breakpoints)
        if text.startswith("db"):
            values = _scan_ints(text[2:], 1)
            if not values:
                return _BREAK_ERROR
            self.delete_breakpoint(values[0])
            return ""
        if not halted and text.startswith("s"):
            rest = text[4:] if text.startswith("step") else text[1:]
            values = _scan_ints(rest, 1)
            message, count = "", 1
            if values:
                if values[0] <= 0:
                    message = _STEP_ERROR
                else:
                    count = values[0]
            self._steps(count)
            return message
        if not self.prev_disable and text in ("prev", "p"):
            try:
                self.rewind()
            except MachineError as error:
                return str(error)
            return ""
        if text.startswith("pm"):
            values = _scan_ints(text[2:], 1)
            if not values:
                return "# Error: Invalid memory index format"
            idx = self.machine.check_memory_index(values[0])
            return render_memory(self.machine.memory, idx)
        if text in ("log", "l"):
            self.dump_log(self.log_directory if self.log_directory is not None else ".")
            return "Outputting stat info... done!\n"
        if text in ("quit", "q"):
            self.quit_requested = True
            return ""
        if text in ("help", "h"):
            return help_text()
        return ""

    def render(self, width: int, height: int) -> str:
        """The whole console: status, registers and code around the PC."""
        screen = Screen(width, height)
        machine = self.machine
        assert_opcodes = {
            op for op, m in self.table.items() if m.operation in ("asrt", "asrt_s")
        }
        parts = [
            render_status(
                self.binfile_name,
                self.infile_name,
                len(machine.codes),
                self.dynamic_inst_count,
                time.monotonic() - self.start_time,
                width,
            )
            + "\n",
            screen.border("=", False),
            render_registers(screen, machine.reg, "r"),
            screen.border("-"),
            render_registers(screen, machine.freg, "f"),
            screen.border("=", False),
        ]
        code = render_code(
            screen, machine.codes, machine.pc, self.breakpoints, self.table, assert_opcodes
        )
        return "".join(parts) + "\n".join(text for text, _ in code) + "\n"

    def disassemble_program(self) -> list[str]:
        """One line per instruction: byte address and disassembly."""
        return [
            f"{index * 4:>7} | {disassemble(inst, self.table)}"
            for index, inst in enumerate(self.machine.codes)
        ]

    def dump_log(self, directory: str | Path = ".") -> None:
        """Write execution statistics and final state as log files."""
        base = Path(directory)
        machine = self.machine
        with open(base / "call_cnt.log", "w") as out:
            out.write(f"# dynamic inst cnt = {self.dynamic_inst_count}\n")
            out.write("# PC : called cnt\n")
            for index, count in enumerate(self.pc_called_count):
                out.write(f"{4 * index} {count}\n")

        opcode_of = {m.operation: op for op, m in self.table.items()}
        with open(base / "instruction.log", "w") as out:
            out.write("# inst number : called cnt\n")
            for name, count in sorted(
                machine.inst_count.items(), key=lambda item: opcode_of.get(item[0], -1)
            ):
                out.write(f"{opcode_of.get(name, name)} {count}\n")

        with open(base / "register.log", "w") as out:
            out.write("# General purpose registers\n")
            out.writelines(f"0x{r & _MASK32:x}\n" for r in machine.reg)
            out.write("# Floating point registers\n")
            out.writelines(f"0x{float_to_ubits(f):x}\n" for f in machine.freg)

        if machine.output_memory:
            with open(base / "memory.log", "w") as out:
                out.write(f"# Max idx = {machine.memory_idx_max}\n")
                out.writelines(f"{m & _MASK32:x}\n" for m in machine.memory)
            with open(base / "memory_access_cnt.log", "w") as out:
                for idx, count in sorted(machine.memory_access_count.items()):
                    out.write(f"{idx} {count}\n")