"""Guest physical memory with fall-through to memory-mapped devices."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, TextIO

logger = logging.getLogger(__name__)

_ACCESS_SIZES = (1, 2, 4, 8)


class _Bus(Protocol):
    def read(self, addr: int, length: int) -> int: ...

    def write(self, addr: int, length: int, data: int) -> None: ...


class OutOfBoundError(Exception):
    """An access hit neither physical memory nor any device."""

    def __init__(self, addr: int, left: int, right: int) -> None:
        super().__init__(
            f"address = 0x{addr:08x} is out of bound of pmem "
            f"[0x{left:08x}, 0x{right:08x}]"
        )
        self.addr = addr
        self.left = left
        self.right = right


def _check_length(length: int) -> None:
    if length not in _ACCESS_SIZES:
        raise ValueError(f"unsupported access length {length}")


class PhysicalMemory:
    """A block of guest RAM starting at ``base``; other addresses go to ``mmio``."""

    def __init__(self, base: int, size: int, mmio: Optional[_Bus] = None) -> None:
        self.base = base
        self.size = size
        self.mmio = mmio
        self.data = bytearray(size)
        self.trace: Optional[TextIO] = None
        logger.info("physical memory area [0x%08x, 0x%08x]", self.left, self.right)

    @property
    def left(self) -> int:
        return self.base

    @property
    def right(self) -> int:
        return self.base + self.size - 1

    def contains(self, addr: int) -> bool:
        """True if ``addr`` lies in guest RAM."""
        return 0 <= addr - self.base < self.size

    def _offset(self, addr: int, length: int) -> int:
        offset = addr - self.base
        if offset + length > self.size:
            raise OutOfBoundError(addr, self.left, self.right)
        return offset

    def read(self, addr: int, length: int) -> int:
        """Read ``length`` bytes little-endian at ``addr``."""
        _check_length(length)
        if self.trace is not None:
            self.trace.write(f"READ    0x{addr:08x}   {length}\n")
        if self.contains(addr):
            offset = self._offset(addr, length)
            return int.from_bytes(self.data[offset:offset + length], "little")
        if self.mmio is not None:
            return self.mmio.read(addr, length)
        raise OutOfBoundError(addr, self.left, self.right)

    def write(self, addr: int, length: int, data: int) -> None:
        """Write the low ``length`` bytes of ``data`` little-endian at ``addr``."""
        _check_length(length)
        if self.trace is not None:
            self.trace.write(f"WRITE   0x{addr:08x}   {length}   0x{data & 0xFFFFFFFF:08x}\n")
        value = data & ((1 << (8 * length)) - 1)
        if self.contains(addr):
            offset = self._offset(addr, length)
            self.data[offset:offset + length] = value.to_bytes(length, "little")
            return
        if self.mmio is not None:
            self.mmio.write(addr, length, value)
            return
        raise OutOfBoundError(addr, self.left, self.right)

    def load(self, addr: int, data: bytes) -> None:
        """Copy raw bytes into guest RAM at ``addr``."""
        if not self.contains(addr):
            raise OutOfBoundError(addr, self.left, self.right)
        offset = self._offset(addr, len(data))
        self.data[offset:offset + len(data)] = data

    def fetch(self, addr: int, length: int) -> int:
        """Fetch instruction bytes; same path as a data read."""
        return self.read(addr, length)