"""Bit-pattern matching and field extraction for instruction decoders."""

from __future__ import annotations

from dataclasses import dataclass

MAX_PATTERN_BITS = 64


@dataclass(frozen=True)
class InstructionPattern:
    """A fixed-bit pattern: bits where ``mask`` is set must equal ``key``."""

    text: str
    key: int
    mask: int
    width: int

    def matches(self, inst: int) -> bool:
        """True if ``inst`` agrees with every fixed bit of the pattern."""
        return (inst & self.mask) == self.key


def parse_pattern(pattern: str) -> InstructionPattern:
    """Parse a string of ``0``, ``1`` and ``?`` (spaces ignored), most significant bit first."""
    key = mask = width = 0
    for ch in pattern:
        if ch == " ":
            continue
        if ch not in "01?":
            raise ValueError(f"invalid character '{ch}' in pattern string")
        key <<= 1
        mask <<= 1
        width += 1
        if ch != "?":
            key |= int(ch)
            mask |= 1
    if width > MAX_PATTERN_BITS:
        raise ValueError(f"pattern too long: {width} bits")
    return InstructionPattern(pattern, key, mask, width)


def bits(value: int, hi: int, lo: int) -> int:
    """Bits ``hi`` down to ``lo`` of ``value``, inclusive."""
    if hi < lo:
        raise ValueError("hi must not be below lo")
    return (value >> lo) & ((1 << (hi - lo + 1)) - 1)


def sign_extend(value: int, width: int) -> int:
    """Interpret the low ``width`` bits of ``value`` as a two's complement number."""
    if width < 1:
        raise ValueError("width must be positive")
    value &= (1 << width) - 1
    if value >> (width - 1):
        value -= 1 << width
    return value