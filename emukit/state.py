"""Run state of the emulator and the host calls that change it."""

from __future__ import annotations

import enum
import sys
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, TextIO

ANSI_FG_RED = "\33[1;31m"
ANSI_FG_GREEN = "\33[1;32m"
ANSI_NONE = "\33[0m"


class RunState(enum.Enum):
    """Where the emulated machine stands."""

    RUNNING = "running"
    STOP = "stop"
    END = "end"
    ABORT = "abort"
    QUIT = "quit"


def format_invalid_instruction(pc: int, words: Iterable[int], logo: str) -> str:
    """Build the report shown when the decoder meets an unknown opcode."""
    first, second = (w & 0xFFFFFFFF for w in words)
    raw = first.to_bytes(4, "little") + second.to_bytes(4, "little")
    byte_text = " ".join(f"{b:02x}" for b in raw)
    where = f"0x{pc:08x}"
    advice = (
        f"If it is the first case, see\n{logo}\nfor more details.\n\n"
        "If it is the second case, remember:\n"
        "* The machine is always right!\n"
        "* Every line of untested code is always wrong!\n\n"
    )
    return (
        f"invalid opcode(PC = {where}):\n"
        f"\t{byte_text} ...\n"
        f"\t{first:08x} {second:08x}...\n"
        "There are two cases which will trigger this unexpected exception:\n"
        f"1. The instruction at PC = {where} is not implemented.\n"
        "2. Something is implemented incorrectly.\n"
        f"Find this PC({where}) in the disassembling result to distinguish which case it is.\n\n"
        f"{ANSI_FG_RED}{advice}{ANSI_NONE}"
    )


@dataclass
class EmuState:
    """Current run state plus where and how the guest halted."""

    state: RunState = RunState.STOP
    halt_pc: int = 0
    halt_ret: int = 0
    on_halt: Optional[Callable[[], None]] = None
    output: Optional[TextIO] = None

    def halt(self, state: RunState, pc: int, halt_ret: int) -> None:
        """Move to ``state`` and remember the halting pc and return value."""
        if self.on_halt is not None:
            self.on_halt()
        self.state = state
        self.halt_pc = pc
        self.halt_ret = halt_ret

    def invalid_instruction(self, pc: int, words: Iterable[int], logo: str) -> str:
        """Report an unknown opcode at ``pc`` and abort the machine."""
        message = format_invalid_instruction(pc, words, logo)
        stream = self.output if self.output is not None else sys.stdout
        stream.write(message)
        self.halt(RunState.ABORT, pc, -1)
        return message