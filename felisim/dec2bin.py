"""Show an integer or a float together with its 32-bit pattern."""

from __future__ import annotations

import re
import sys
from typing import Iterator, Sequence

from .util import float_to_ubits, format_bits, to_float32, to_int32

USAGE = "Usage: dec2bin [-i integer] [-f float]"

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(
    r"\s*([+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan))",
    re.IGNORECASE,
)


def _parse_int(text: str) -> int:
    match = _INT_PREFIX.match(text)
    return to_int32(int(match.group(1))) if match else 0


def _parse_float(text: str) -> float:
    match = _FLOAT_PREFIX.match(text)
    return float(match.group(1)) if match else 0.0


def describe_int(text: str) -> str:
    """Parse the leading integer of ``text``; return it and its bit pattern."""
    value = _parse_int(text)
    return f"{value}\n{format_bits(value)}"


def describe_float(text: str) -> str:
    """Parse the leading float of ``text``; return it and its single-precision bits."""
    value = to_float32(_parse_float(text))
    return f"{value:g}\n{format_bits(float_to_ubits(value))}"


def _options(args: Sequence[str], with_value: str) -> Iterator[tuple[str, str | None]]:
    """Yield ``(option, value)`` in order; ``("?", None)`` for a bad option."""
    index = 0
    while index < len(args):
        arg = args[index]
        if arg == "--":
            return
        if not arg.startswith("-") or arg == "-":
            index += 1
            continue
        pos = 1
        while pos < len(arg):
            letter = arg[pos]
            if letter not in with_value:
                print(f"dec2bin: invalid option -- '{letter}'", file=sys.stderr)
                yield "?", None
                pos += 1
                continue
            rest = arg[pos + 1:]
            if rest:
                yield letter, rest
            else:
                index += 1
                if index >= len(args):
                    print(
                        f"dec2bin: option requires an argument -- '{letter}'",
                        file=sys.stderr,
                    )
                    yield "?", None
                    return
                yield letter, args[index]
            break
        index += 1


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print(USAGE)
        return 1

    handlers = {"i": describe_int, "f": describe_float}
    for option, value in _options(args, "if"):
        handler = handlers.get(option)
        if handler is None or value is None:
            print(USAGE)
            return 1
        print(handler(value))
    return 0


if __name__ == "__main__":
    sys.exit(main())