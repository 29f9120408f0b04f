"""Real-time clock device and the periodic alarm that drives timer interrupts."""

from __future__ import annotations

import signal
import time
from typing import Callable, List, Optional

from ..iomap import DeviceError, IOMap
from ..state import EmuState, RunState

MAX_HANDLER = 8

_BOOT = time.monotonic()


def _uptime_us() -> int:
    return int((time.monotonic() - _BOOT) * 1_000_000)


class AlarmRegistry:
    """Up to eight callbacks run on every tick of a virtual-time alarm."""

    def __init__(self) -> None:
        self.handlers: List[Callable[[], None]] = []

    def add(self, handler: Callable[[], None]) -> None:
        """Register ``handler`` to run on every alarm tick."""
        if len(self.handlers) >= MAX_HANDLER:
            raise DeviceError("too many alarm handlers")
        self.handlers.append(handler)

    def fire(self) -> None:
        """Run every registered handler in registration order."""
        for handler in self.handlers:
            handler()

    def start(self, hz: int) -> None:
        """Fire the handlers ``hz`` times per second of process CPU time."""
        if hz <= 0:
            raise ValueError("alarm frequency must be positive")
        signal.signal(signal.SIGVTALRM, lambda signum, frame: self.fire())
        interval = 1.0 / hz
        signal.setitimer(signal.ITIMER_VIRTUAL, interval, interval)


class RTC:
    """Two 32-bit registers holding the uptime in microseconds."""

    def __init__(self, clock: Optional[Callable[[], int]] = None,
                 state: Optional[EmuState] = None,
                 raise_intr: Optional[Callable[[], None]] = None) -> None:
        self.clock = clock if clock is not None else _uptime_us
        self.state = state if state is not None else EmuState()
        self.raise_intr = raise_intr if raise_intr is not None else (lambda: None)
        self.space = bytearray(8)

    def _io_handler(self, offset: int, length: int, is_write: bool) -> None:
        if offset not in (0, 4):
            raise DeviceError(f"rtc does not support offset = {offset}")
        if not is_write and offset == 4:
            us = self.clock()
            self.space[0:4] = (us & 0xFFFFFFFF).to_bytes(4, "little")
            self.space[4:8] = ((us >> 32) & 0xFFFFFFFF).to_bytes(4, "little")

    def attach(self, bus, addr: int, alarms: Optional[AlarmRegistry] = None) -> IOMap:
        """Map the clock onto ``bus`` and hook the timer interrupt to ``alarms``."""
        iomap = bus.add_map("rtc", addr, self.space, self._io_handler)
        if alarms is not None:
            alarms.add(self.tick)
        return iomap

    def tick(self) -> None:
        """Raise a timer interrupt while the guest is running."""
        if self.state.state is RunState.RUNNING:
            self.raise_intr()