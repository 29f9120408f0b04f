"""16550-compatible serial port whose output goes to a host stream."""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from ..iomap import DeviceError, IOMap

CH_OFFSET = 0
SERIAL_SPACE = 8


class Serial:
    """Transmit-only UART: each byte written to the data register is printed."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream if stream is not None else sys.stderr
        self.space = bytearray(SERIAL_SPACE)

    def _putc(self, byte: int) -> None:
        self.stream.write(chr(byte))
        self.stream.flush()

    def _io_handler(self, offset: int, length: int, is_write: bool) -> None:
        if length != 1:
            raise DeviceError(f"serial access must be 1 byte, got {length}")
        if offset != CH_OFFSET:
            raise DeviceError(f"do not support offset = {offset}")
        if not is_write:
            raise DeviceError("do not support read")
        self._putc(self.space[CH_OFFSET])

    def attach(self, bus, addr: int) -> IOMap:
        """Map the port registers onto ``bus`` at ``addr``."""
        return bus.add_map("serial", addr, self.space, self._io_handler)