"""Bit-level helpers shared by the decoder, the machine and the tools."""

from __future__ import annotations

import math
import struct

_MASK32 = 0xFFFFFFFF


def bitset(inst: int, begin: int, end: int) -> int:
    """Extract bits ``begin`` to ``end`` of a 32-bit word, counting from the MSB.

    ``bitset(0b10110111 << 24, 0, 8) == 0b10110111``.
    """
    length = end - begin
    if not 0 <= begin <= end <= 32 or length == 0:
        raise ValueError(f"invalid bit range [{begin}, {end})")
    shifted = (inst << begin) & _MASK32
    return shifted >> (32 - length)


def sign_ext(x: int, bits: int) -> int:
    """Sign-extend the low ``bits`` bits of ``x`` into an unsigned 32-bit word."""
    if x & (1 << (bits - 1)):
        return ((~0 << bits) | x) & _MASK32
    return x & _MASK32


def to_int32(x: int) -> int:
    """Wrap an integer to a signed 32-bit value."""
    x &= _MASK32
    return x - (1 << 32) if x & 0x80000000 else x


def to_float32(x: float) -> float:
    """Round a Python float to single precision."""
    try:
        return struct.unpack("<f", struct.pack("<f", x))[0]
    except OverflowError:
        return math.copysign(math.inf, x)


def float_to_ubits(f: float) -> int:
    """Return the IEEE-754 single-precision bit pattern of ``f`` as unsigned."""
    return struct.unpack("<I", struct.pack("<f", to_float32(f)))[0]


def float_to_bits(f: float) -> int:
    """Return the IEEE-754 single-precision bit pattern of ``f`` as signed."""
    return to_int32(float_to_ubits(f))


def bits_to_float(b: int) -> float:
    """Interpret a 32-bit pattern as a single-precision float."""
    return struct.unpack("<f", struct.pack("<I", b & _MASK32))[0]


def format_bits(bits: int, begin: int = 0, end: int = 32) -> str:
    """Render bits ``begin`` to ``end`` (MSB first) as a string of 0s and 1s."""
    word = bits & _MASK32
    return "".join(str((word >> (31 - b)) & 1) for b in range(begin, end))