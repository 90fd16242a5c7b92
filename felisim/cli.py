"""Command-line entry point of the simulator."""

from __future__ import annotations

import getopt
import re
import shutil
import sys
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .disasm import Mnemonic, OperandField, OperandType
from .machine import DEFAULT_MEMORY_NUM, MachineError
from .simulator import Simulator, load_program

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass
class Options:
    interactive: bool = True
    output_memory: bool = False
    prev_disable: bool = False
    disasm: bool = False
    quit_run: bool = False
    memory_num: int = DEFAULT_MEMORY_NUM
    binfile: str = ""
    infile: str = ""
    outfile: str = "out.log"
    table: str = ""


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def parse_args(argv: Sequence[str]) -> Options:
    """Parse command-line options; raise ValueError on invalid usage."""
    args = list(argv)
    if not args:
        raise ValueError("# Error: Invalid usage. Read 'README.md'")
    try:
        pairs, _ = getopt.getopt(args, "rmndqs:f:i:o:t:")
    except getopt.GetoptError as error:
        raise ValueError(f"# Error: {error}") from None
    opts = Options()
    for flag, value in pairs:
        if flag == "-r":
            opts.interactive = False
        elif flag == "-m":
            opts.output_memory = True
        elif flag == "-n":
            opts.prev_disable = True
        elif flag == "-d":
            opts.disasm = True
        elif flag == "-q":
            opts.quit_run = True
        elif flag == "-s":
            opts.memory_num = _atoi(value)
            if opts.memory_num < 0:
                raise ValueError("# Error: Invalid memory size")
        elif flag == "-f":
            opts.binfile = value
        elif flag == "-i":
            opts.infile = value
        elif flag == "-o":
            opts.outfile = value
        elif flag == "-t":
            opts.table = value
    if not opts.binfile:
        raise ValueError("# Error: No binfile given")
    if not opts.table:
        raise ValueError("# Error: No opcode table given")
    return opts


def _load_table(path: str) -> dict[int, Mnemonic]:
    """Read lines of ``opcode mnemonic type fields``, e.g. ``1 addi I RRIN``."""
    table: dict[int, Mnemonic] = {}
    for number, raw in enumerate(Path(path).read_text().splitlines(), 1):
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        parts = line.split()
        try:
            opcode, name, kind = int(parts[0]), parts[1], OperandType[parts[2]]
            letters = parts[3] if len(parts) > 3 else "NNNN"
            fields = tuple(OperandField[c] for c in letters.ljust(4, "N")[:4])
        except (IndexError, KeyError, ValueError):
            raise ValueError(f"# Error: Invalid opcode table line {number}") from None
        table[opcode] = Mnemonic(name, kind, fields)
    return table


def _open(stack: ExitStack, path: str, mode: str):
    try:
        return stack.enter_context(open(path, mode))
    except OSError:
        suffix = " for writing" if "w" in mode else ""
        raise ValueError(f"# Error: File {path} couldn't be opened{suffix}") from None


def _interact(sim: Simulator) -> None:
    while not sim.quit_requested:
        size = shutil.get_terminal_size((80, 24))
        print(sim.render(size.columns, size.lines), end="")
        try:
            line = input(">> ")
        except EOFError:
            break
        message = sim.command(line)
        if message:
            print(message)


def main(argv: Sequence[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        opts = parse_args(args)
        table = _load_table(opts.table)
        with ExitStack() as stack:
            try:
                codes = load_program(opts.binfile)
            except OSError:
                raise ValueError(f"# Error: File {opts.binfile} couldn't be opened") from None
            infile = _open(stack, opts.infile, "rb") if opts.infile else None
            outfile = _open(stack, opts.outfile, "wb")
            sim = Simulator(
                codes,
                table,
                memory_num=opts.memory_num,
                infile=infile,
                outfile=outfile,
                interactive=opts.interactive,
                output_memory=opts.output_memory,
                prev_disable=opts.prev_disable,
                binfile_name=opts.binfile,
                infile_name=opts.infile,
            )
            if opts.disasm:
                for line in sim.disassemble_program():
                    print(line)
            elif opts.interactive:
                _interact(sim)
            else:
                sim.run()
                size = shutil.get_terminal_size((80, 24))
                print(sim.render(size.columns, size.lines), end="")
                print("finished")
                while not opts.quit_run:
                    try:
                        if input() == "q":
                            break
                    except EOFError:
                        break
    except (ValueError, MachineError) as error:
        print(error, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())