"""i8042-style keyboard: host scancodes are queued and read by the guest."""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, Optional

from ..iomap import DeviceError, IOMap
from ..state import EmuState, RunState

KEYDOWN_MASK = 0x8000
KEY_NONE = 0
KEY_QUEUE_LEN = 1024

# Guest key numbering; not a standard one.
KEY_NAMES = (
    "ESCAPE", "F1", "F2", "F3", "F4", "F5", "F6", "F7", "F8", "F9", "F10", "F11", "F12",
    "GRAVE", "1", "2", "3", "4", "5", "6", "7", "8", "9", "0", "MINUS", "EQUALS", "BACKSPACE",
    "TAB", "Q", "W", "E", "R", "T", "Y", "U", "I", "O", "P",
    "LEFTBRACKET", "RIGHTBRACKET", "BACKSLASH",
    "CAPSLOCK", "A", "S", "D", "F", "G", "H", "J", "K", "L",
    "SEMICOLON", "APOSTROPHE", "RETURN",
    "LSHIFT", "Z", "X", "C", "V", "B", "N", "M", "COMMA", "PERIOD", "SLASH", "RSHIFT",
    "LCTRL", "APPLICATION", "LALT", "SPACE", "RALT", "RCTRL",
    "UP", "DOWN", "LEFT", "RIGHT", "INSERT", "DELETE", "HOME", "END", "PAGEUP", "PAGEDOWN",
)

KEY_CODES: Dict[str, int] = {name: code for code, name in enumerate(KEY_NAMES, start=1)}

# Host scancodes (USB HID usage ids) for the keys above.
HOST_SCANCODES: Dict[str, int] = {
    **{chr(ord("A") + i): 4 + i for i in range(26)},
    **{str(d): 29 + d for d in range(1, 10)},
    "0": 39, "RETURN": 40, "ESCAPE": 41, "BACKSPACE": 42, "TAB": 43, "SPACE": 44,
    "MINUS": 45, "EQUALS": 46, "LEFTBRACKET": 47, "RIGHTBRACKET": 48, "BACKSLASH": 49,
    "SEMICOLON": 51, "APOSTROPHE": 52, "GRAVE": 53, "COMMA": 54, "PERIOD": 55,
    "SLASH": 56, "CAPSLOCK": 57,
    **{f"F{n}": 57 + n for n in range(1, 13)},
    "INSERT": 73, "HOME": 74, "PAGEUP": 75, "DELETE": 76, "END": 77, "PAGEDOWN": 78,
    "RIGHT": 79, "LEFT": 80, "DOWN": 81, "UP": 82, "APPLICATION": 101,
    "LCTRL": 224, "LSHIFT": 225, "LALT": 226, "RCTRL": 228, "RSHIFT": 229, "RALT": 230,
}

KEYMAP: Dict[int, int] = {HOST_SCANCODES[name]: KEY_CODES[name] for name in KEY_NAMES}


class Keyboard:
    """Queues key events while the guest runs; the data port pops one per read."""

    def __init__(self, state: Optional[EmuState] = None) -> None:
        self.state = state if state is not None else EmuState()
        self.queue: Deque[int] = deque()
        self.space = bytearray(KEY_NONE.to_bytes(4, "little"))

    def send_key(self, scancode: int, is_keydown: bool) -> None:
        """Queue a host key event if the machine runs and the key is mapped."""
        code = KEYMAP.get(scancode, KEY_NONE)
        if self.state.state is not RunState.RUNNING or code == KEY_NONE:
            return
        if len(self.queue) + 1 >= KEY_QUEUE_LEN:
            raise DeviceError("key queue overflow!")
        self.queue.append(code | (KEYDOWN_MASK if is_keydown else 0))

    def dequeue(self) -> int:
        """Pop the oldest key event, or the no-key code if none is waiting."""
        return self.queue.popleft() if self.queue else KEY_NONE

    def _io_handler(self, offset: int, length: int, is_write: bool) -> None:
        if is_write:
            raise DeviceError("keyboard data port is read-only")
        if offset != 0:
            raise DeviceError(f"keyboard does not support offset = {offset}")
        self.space[0:4] = self.dequeue().to_bytes(4, "little")

    def attach(self, bus, addr: int) -> IOMap:
        """Map the data port onto ``bus`` at ``addr``."""
        return bus.add_map("keyboard", addr, self.space, self._io_handler)