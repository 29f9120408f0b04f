"""Periodic device servicing: screen refresh and host input events."""

from __future__ import annotations

import enum
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional

from ..state import EmuState, RunState
from .keyboard import Keyboard
from .vga import VGA


class EventKind(enum.Enum):
    """Host input event types the hub understands."""

    QUIT = "quit"
    KEYDOWN = "keydown"
    KEYUP = "keyup"


@dataclass
class Event:
    """One host input event."""

    kind: EventKind
    scancode: int = 0


def _uptime_us() -> int:
    return time.monotonic_ns() // 1000


class DeviceHub:
    """Refreshes the screen and drains host events at most ``timer_hz`` times a second."""

    def __init__(self, state: EmuState, clock: Optional[Callable[[], int]] = None,
                 timer_hz: int = 60, vga: Optional[VGA] = None,
                 keyboard: Optional[Keyboard] = None) -> None:
        if timer_hz <= 0:
            raise ValueError("timer frequency must be positive")
        self.state = state
        self.clock = clock if clock is not None else _uptime_us
        self.timer_hz = timer_hz
        self.vga = vga
        self.keyboard = keyboard
        self.events: Deque[Event] = deque()
        self._last = 0

    def post_event(self, event: Event) -> None:
        """Queue a host input event for the next update."""
        self.events.append(event)

    def update(self) -> None:
        """Service devices if a full timer period has passed since the last time."""
        now = self.clock()
        if now - self._last < 1_000_000 // self.timer_hz:
            return
        self._last = now
        if self.vga is not None:
            self.vga.update_screen()
        while self.events:
            event = self.events.popleft()
            if event.kind is EventKind.QUIT:
                self.state.state = RunState.QUIT
            elif self.keyboard is not None:
                self.keyboard.send_key(event.scancode, event.kind is EventKind.KEYDOWN)

    def clear_events(self) -> None:
        """Drop every pending host event."""
        self.events.clear()