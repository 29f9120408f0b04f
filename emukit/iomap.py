"""Device address maps: memory-mapped and port-mapped I/O buses."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

IO_SPACE_MAX = 32 * 1024 * 1024
PAGE_SIZE = 4096
NR_MAP = 16
PORT_IO_SPACE_MAX = 65535

IOCallback = Callable[[int, int, bool], None]


class DeviceError(Exception):
    """A device access or registration was invalid."""


class SpaceAllocator:
    """Hands out device register spaces from a bounded, page-granular pool."""

    def __init__(self, limit: int = IO_SPACE_MAX) -> None:
        self.limit = limit
        self.used = 0

    def allocate(self, size: int) -> bytearray:
        """Return a zeroed buffer of ``size`` bytes, charging whole pages."""
        charged = (size + PAGE_SIZE - 1) & ~(PAGE_SIZE - 1)
        if self.used + charged >= self.limit:
            raise DeviceError("device I/O space exhausted")
        self.used += charged
        return bytearray(size)


@dataclass
class IOMap:
    """One device window ``[low, high]`` backed by ``space``."""

    name: str
    low: int
    high: int
    space: bytearray
    callback: Optional[IOCallback] = None

    def _offset(self, addr: int, length: int) -> int:
        if not 1 <= length <= 8:
            raise DeviceError(f"unsupported access length {length}")
        if not self.low <= addr <= self.high:
            raise DeviceError(
                f"address (0x{addr:08x}) is out of bound {{{self.name}}} "
                f"[0x{self.low:08x}, 0x{self.high:08x}]"
            )
        offset = addr - self.low
        if offset + length > len(self.space):
            raise DeviceError(f"access at 0x{addr:08x} runs past the end of {self.name}")
        return offset

    def read(self, addr: int, length: int) -> int:
        """Let the device prepare data, then read it."""
        offset = self._offset(addr, length)
        if self.callback is not None:
            self.callback(offset, length, False)
        return int.from_bytes(self.space[offset:offset + length], "little")

    def write(self, addr: int, length: int, data: int) -> None:
        """Store the data, then notify the device."""
        offset = self._offset(addr, length)
        value = data & ((1 << (8 * length)) - 1)
        self.space[offset:offset + length] = value.to_bytes(length, "little")
        if self.callback is not None:
            self.callback(offset, length, True)


class _MapTable:
    kind = "io"

    def __init__(self) -> None:
        self.maps: List[IOMap] = []

    def _find(self, addr: int) -> Optional[IOMap]:
        return next((m for m in self.maps if m.low <= addr <= m.high), None)

    def _register(self, name: str, addr: int, space: bytearray,
                  callback: Optional[IOCallback]) -> IOMap:
        iomap = IOMap(name, addr, addr + len(space) - 1, space, callback)
        self.maps.append(iomap)
        logger.info("Add %s map '%s' at [0x%08x, 0x%08x]",
                    self.kind, name, iomap.low, iomap.high)
        return iomap

    def _check_room(self) -> None:
        if len(self.maps) >= NR_MAP:
            raise DeviceError(f"too many {self.kind} maps")


class MMIOBus(_MapTable):
    """Memory-mapped devices that must not overlap RAM or each other."""

    kind = "mmio"

    def __init__(self, pmem_low: int, pmem_high: int) -> None:
        super().__init__()
        self.pmem_low = pmem_low
        self.pmem_high = pmem_high

    def _in_pmem(self, addr: int) -> bool:
        return self.pmem_low <= addr <= self.pmem_high

    def add_map(self, name: str, addr: int, space: bytearray,
                callback: Optional[IOCallback]) -> IOMap:
        """Register a device window covering ``len(space)`` bytes at ``addr``."""
        self._check_room()
        left, right = addr, addr + len(space) - 1
        if self._in_pmem(left) or self._in_pmem(right):
            self._overlap(name, left, right, "pmem", self.pmem_low, self.pmem_high)
        for other in self.maps:
            if left <= other.high and right >= other.low:
                self._overlap(name, left, right, other.name, other.low, other.high)
        return self._register(name, addr, space, callback)

    def find(self, addr: int) -> Optional[IOMap]:
        """Return the map containing ``addr``, or None."""
        return self._find(addr)

    @staticmethod
    def _overlap(name1: str, l1: int, r1: int, name2: str, l2: int, r2: int) -> None:
        raise DeviceError(
            f"MMIO region {name1}@[0x{l1:08x}, 0x{r1:08x}] is overlapped "
            f"with {name2}@[0x{l2:08x}, 0x{r2:08x}]"
        )

    def _lookup(self, addr: int) -> IOMap:
        iomap = self.find(addr)
        if iomap is None:
            raise DeviceError(f"address (0x{addr:08x}) is out of bound")
        return iomap

    def read(self, addr: int, length: int) -> int:
        return self._lookup(addr).read(addr, length)

    def write(self, addr: int, length: int, data: int) -> None:
        self._lookup(addr).write(addr, length, data)


class PortIOBus(_MapTable):
    """Port-mapped devices in a 64 KiB port space."""

    kind = "port-io"

    def add_map(self, name: str, addr: int, space: bytearray,
                callback: Optional[IOCallback]) -> IOMap:
        """Register a device window covering ``len(space)`` ports at ``addr``."""
        self._check_room()
        if addr + len(space) > PORT_IO_SPACE_MAX:
            raise DeviceError(f"port map '{name}' exceeds the port space")
        return self._register(name, addr, space, callback)

    def _lookup(self, addr: int, length: int) -> IOMap:
        if addr + length - 1 >= PORT_IO_SPACE_MAX:
            raise DeviceError(f"port 0x{addr:x} is out of the port space")
        iomap = self._find(addr)
        if iomap is None:
            raise DeviceError(f"no device at port 0x{addr:x}")
        return iomap

    def read(self, addr: int, length: int) -> int:
        return self._lookup(addr, length).read(addr, length)

    def write(self, addr: int, length: int, data: int) -> None:
        self._lookup(addr, length).write(addr, length, data)