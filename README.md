# felisim

felisim runs programs for a small 32-bit MIPS-like processor one instruction
at a time. It loads a raw binary of little-endian 32-bit instruction words
and executes them against 32 general-purpose registers, 32 single-precision
floating-point registers and a word-addressed memory. You can step, set
breakpoints, rewind up to 256 instructions and inspect the machine as it
goes, or print a disassembly of the program instead of running it.

It has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Running a program

```
felisim -f program.bin -t opcodes.txt
```

Both `-f` and `-t` are required.

| Option      | Meaning                                                              |
|-------------|----------------------------------------------------------------------|
| `-f FILE`   | program binary to load                                               |
| `-t FILE`   | opcode table that maps opcode numbers to instructions (see below)    |
| `-i FILE`   | file that the `in` instruction reads bytes from                      |
| `-o FILE`   | file that the `out` instruction writes bytes to (default `out.log`)  |
| `-s N`      | memory size in words (default 1000000; negative is an error)         |
| `-r`        | run straight to `halt` without prompting for commands                |
| `-m`        | record memory accesses and include memory in the dumped logs         |
| `-n`        | disable the history used by `prev`                                   |
| `-d`        | print a disassembly of the program and exit                          |
| `-q`        | with `-r`, exit as soon as the program halts instead of waiting for `q` |

Errors (a file that cannot be opened, an unknown opcode, a memory index out
of range, a failed `asrt`/`asrt_s`, reading past the end of the input file,
division by zero and so on) are printed to standard error and the command
exits with status 1.

### The opcode table

The package ships no instruction encoding of its own; the table given with
`-t` decides which 6-bit opcode means which instruction. Each non-empty line
has the form

```
OPCODE MNEMONIC TYPE [FIELDS]
```

for example `8 addi I RRIN` or `17 add.s R FFFN`. Text after `#` is a
comment.

- `OPCODE` is the number held in the top six bits of an instruction word.
- `MNEMONIC` is shown in the disassembly. With any `.` replaced by `_` it
  must name one of the machine's operations: `add`, `sub`, `mult`, `div`,
  `and`, `or`, `xor`, `nor`, `addi`, `multi`, `divi`, `andi`, `ori`, `xori`,
  `lui`, `sll`, `srl`, `sra`, `beq`, `bgez`, `bgtz`, `blez`, `bltz`,
  `bgezal`, `bltzal`, `j`, `jal`, `jalr`, `jr`, `nop`, `halt`, `lw`, `lwc1`,
  `lwo`, `lwoc1`, `sw`, `swc1`, `swo`, `swoc1`, `add_s`, `sub_s`, `mul_s`,
  `div_s`, `abs_s`, `neg_s`, `mov_s`, `sqrt_s`, `cvt_s_w`, `cvt_w_s`,
  `mfc1`, `mtc1`, `in`, `out`, `asrt`, `asrt_s`.
- `TYPE` is the instruction format, `R`, `I`, `J` or `N`:
  R is `opcode(6) rs(5) rt(5) rd(5) shamt(5)`, I is
  `opcode(6) rs(5) rt(5) immediate(16)`, J is `opcode(6) rs(5) addr(21)`.
- `FIELDS` is up to four letters, padded with `N`, telling the disassembler
  how to show each operand slot: `R` integer register, `F` float register,
  `I` immediate, `N` nothing.

`asrt` and `asrt_s` compare a register with the word that follows the
instruction in the program and skip over it.

### Interactive commands

Without `-r`, the simulator prints the status line, the registers and the
code around the program counter, then waits at a `>>` prompt:

| Command                    | Action                                                    |
|----------------------------|-----------------------------------------------------------|
| `run`, `r`                 | run until `halt` or a breakpoint                          |
| `step [N]`, `s [N]`        | execute the next N instructions (default 1)               |
| `prev`, `p`                | undo the last instruction (up to 256 steps back)          |
| `break PC [N]`, `b PC [N]` | stop at address PC, after passing it N more times if N is given (N > 0) |
| `pb`                       | list breakpoints                                          |
| `db PC`                    | delete the breakpoint at PC                               |
| `pm IDX`                   | show memory words within three of index IDX               |
| `log`, `l`                 | write the statistics logs                                 |
| `reset`                    | reset registers, memory, counters, breakpoints and history |
| `help`, `h`                | show the command summary                                  |
| `quit`, `q`                | leave the simulator                                       |

On `halt` (and on `log`) the simulator writes, in the current directory,
`call_cnt.log` (how often each address was executed), `instruction.log`
(how often each opcode was executed) and `register.log` (register
contents). With `-m` it also writes `memory.log` and
`memory_access_cnt.log`.

### What it does not do

The console is plain line-based text: the screen is printed again before
each prompt, with no full-screen terminal interface, colours or highlighting
of the current instruction. There is no assembler; programs must already be
binaries, and the opcode table must be supplied by you.

## Inspecting number encodings

`felisim-dec2bin` prints an integer or a single-precision float together
with its 32-bit pattern, which is handy when writing the expected words for
`asrt`:

```
felisim-dec2bin -i 42
felisim-dec2bin -f 1.5
```

## Using it from Python

```python
from felisim.disasm import Mnemonic, OperandField, OperandType
from felisim.simulator import Simulator

R, I, N = OperandField.R, OperandField.I, OperandField.N
table = {
    0: Mnemonic("addi", OperandType.I, (R, R, I, N)),
    1: Mnemonic("halt", OperandType.N),
}
codes = [(1 << 16) | 5, 1 << 26]  # addi r1, r0, 5 ; halt

sim = Simulator(codes, table, memory_num=16, log_directory=None)
sim.run()
assert sim.machine.reg[1] == 5
print("\n".join(sim.disassemble_program()))
```

- `felisim.machine.Machine` holds the processor state and executes single
  instructions by name with `execute`.
- `felisim.simulator.Simulator` adds stepping (`step`, `run`), console
  commands (`command`), breakpoints, rewinding (`rewind`), `reset`,
  rendering (`render`), disassembly and `dump_log`;
  `felisim.simulator.load_program` reads a binary file into words.
- `felisim.disasm.disassemble` turns one instruction word into text.
- `felisim.util` has the bit helpers, e.g. `bitset(0x00FF00FF, 8, 16) == 0xFF`
  and `sign_ext(0xFA98, 16) == 0xFFFFFA98`.