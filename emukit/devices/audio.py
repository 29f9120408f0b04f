"""Audio controller registers and sample buffer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from ..iomap import IOMap

REG_FREQ, REG_CHANNELS, REG_SAMPLES, REG_SBUF_SIZE, REG_INIT, REG_COUNT = range(6)
NR_REG = 6


@dataclass
class AudioSpec:
    """Parameters the guest asks the host audio output to open with."""

    freq: int
    channels: int
    samples: int
    format: str = "S16SYS"


class Audio:
    """Six 32-bit control registers plus a stream buffer in its own window."""

    def __init__(self, open_audio: Optional[Callable[[AudioSpec], None]] = None) -> None:
        self.open_audio = open_audio
        self.regs = bytearray(4 * NR_REG)
        self.sbuf = bytearray()
        self.spec: Optional[AudioSpec] = None

    def _reg(self, index: int) -> int:
        return int.from_bytes(self.regs[4 * index:4 * index + 4], "little")

    def _set_reg(self, index: int, value: int) -> None:
        self.regs[4 * index:4 * index + 4] = (value & 0xFFFFFFFF).to_bytes(4, "little")

    def _io_handler(self, offset: int, length: int, is_write: bool) -> None:
        if offset == 4 * REG_SAMPLES and is_write:
            self.spec = AudioSpec(
                freq=self._reg(REG_FREQ),
                channels=self._reg(REG_CHANNELS),
                samples=self._reg(REG_SAMPLES),
            )
            if self.open_audio is not None:
                self.open_audio(self.spec)

    def attach(self, bus, ctl_addr: int, sbuf_addr: int, sbuf_size: int) -> IOMap:
        """Map the registers and a ``sbuf_size``-byte stream buffer onto ``bus``."""
        iomap = bus.add_map("audio", ctl_addr, self.regs, self._io_handler)
        self.sbuf = bytearray(sbuf_size)
        bus.add_map("audio-sbuf", sbuf_addr, self.sbuf, None)
        self._set_reg(REG_SBUF_SIZE, sbuf_size)
        self._set_reg(REG_INIT, 1)
        self._set_reg(REG_COUNT, 0)
        return iomap