"""Instruction execution loop with tracing and run statistics."""

from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from .state import ANSI_FG_GREEN, ANSI_FG_RED, ANSI_NONE, EmuState, RunState

logger = logging.getLogger(__name__)

MAX_INST_TO_PRINT = 100
RING_SIZE = 20

_FINISHED = (RunState.END, RunState.ABORT, RunState.QUIT)


@dataclass
class Decode:
    """Per-instruction decode record."""

    pc: int = 0
    snpc: int = 0
    dnpc: int = 0
    inst: Union[int, bytes] = 0
    logbuf: str = ""


def _line_pc(line: str) -> Optional[int]:
    try:
        return int(line.split(":", 1)[0], 16)
    except ValueError:
        return None


class InstructionRing:
    """Fixed set of slots holding the most recent trace lines."""

    def __init__(self, size: int = RING_SIZE) -> None:
        self.size = size
        self._slots: List[str] = [""] * size
        self._index = 0
        self.count = 0

    def record(self, line: str) -> None:
        """Store ``line`` in the next slot, overwriting the oldest."""
        slot = self._index % self.size
        self._slots[slot] = line
        self._index = slot + 1
        self.count += 1

    def render(self, current_pc: int) -> str:
        """Show the filled slots, marking the one whose pc is ``current_pc``."""
        lines = []
        for line in self._slots[:min(self.count, self.size)]:
            marker = "-----> " if _line_pc(line) == current_pc else "       "
            lines.append(marker + line)
        return "\n".join(lines)


def format_itrace(pc: int, inst: Union[int, bytes], ilen: int, forward: bool) -> str:
    """Format the pc and raw instruction bytes of one executed instruction."""
    if isinstance(inst, (bytes, bytearray)):
        raw = bytes(inst[:ilen])
    else:
        raw = (inst & ((1 << (8 * ilen)) - 1)).to_bytes(ilen, "little")
    ordered = raw if forward else raw[::-1]
    ilen_max = 8 if forward else 4
    padding = max(ilen_max - ilen, 0) * 3 + 1
    return f"0x{pc:08x}:" + "".join(f" {b:02x}" for b in ordered) + " " * padding


class Executor:
    """Drives an ISA one instruction at a time and keeps run statistics."""

    def __init__(self, isa, state: EmuState,
                 update_devices: Optional[Callable[[], None]] = None) -> None:
        self.isa = isa
        self.state = state
        self.update_devices = update_devices
        self.decode = Decode()
        self.ring = InstructionRing()
        self.instructions = 0
        self.elapsed_us = 0
        self.output = sys.stdout
        self.clock: Callable[[], int] = lambda: time.monotonic_ns() // 1000
        self.difftest: Optional[Callable[[int, int], None]] = None
        self.watchpoints: Optional[Callable[[], bool]] = None
        self.itrace_cond: Callable[[], bool] = lambda: True
        self._print_step = False

    def _exec_once(self, pc: int) -> None:
        d = self.decode
        d.pc = pc
        d.snpc = pc
        self.isa.exec_once(d)
        self.isa.cpu.pc = d.dnpc
        forward = getattr(self.isa, "inst_bytes_forward", False)
        d.logbuf = format_itrace(d.pc, d.inst, d.snpc - d.pc, forward)
        self.ring.record(d.logbuf)

    def _trace_and_difftest(self, dnpc: int) -> None:
        d = self.decode
        if self.itrace_cond():
            logger.debug("%s", d.logbuf)
        if self.difftest is not None:
            self.difftest(d.pc, dnpc)
        if self.watchpoints is not None and self.watchpoints():
            self.state.state = RunState.STOP
        if self._print_step:
            print(d.logbuf, file=self.output)
            if self.state.state is not RunState.RUNNING:
                print(self.ring.render(d.pc), file=self.output)

    def _execute(self, n: int) -> None:
        remaining = n
        while n < 0 or remaining > 0:
            self._exec_once(self.isa.cpu.pc)
            self.instructions += 1
            self._trace_and_difftest(self.isa.cpu.pc)
            if self.state.state is not RunState.RUNNING:
                break
            if self.update_devices is not None:
                self.update_devices()
            remaining -= 1

    def run(self, n: int) -> RunState:
        """Execute up to ``n`` instructions; a negative ``n`` runs until halted."""
        self._print_step = 0 <= n < MAX_INST_TO_PRINT
        if self.state.state in _FINISHED:
            print("Program execution has ended. To restart the program, "
                  "exit NEMU and run again.", file=self.output)
            return self.state.state
        self.state.state = RunState.RUNNING

        start = self.clock()
        self._execute(n)
        self.elapsed_us += self.clock() - start

        current = self.state.state
        if current is RunState.RUNNING:
            self.state.state = RunState.STOP
        elif current in (RunState.END, RunState.ABORT):
            if current is RunState.ABORT:
                verdict = f"{ANSI_FG_RED}ABORT{ANSI_NONE}"
            elif self.state.halt_ret == 0:
                verdict = f"{ANSI_FG_GREEN}HIT GOOD TRAP{ANSI_NONE}"
            else:
                verdict = f"{ANSI_FG_RED}HIT BAD TRAP{ANSI_NONE}"
            logger.info("nemu: %s at pc = 0x%08x", verdict, self.state.halt_pc)
            self.statistics()
        elif current is RunState.QUIT:
            self.statistics()
        return self.state.state

    def statistics(self) -> List[str]:
        """Log and return the host time, instruction count and speed."""
        lines = [
            f"host time spent = {self.elapsed_us:,} us",
            f"total guest instructions = {self.instructions:,}",
        ]
        if self.elapsed_us > 0:
            freq = self.instructions * 1000000 // self.elapsed_us
            lines.append(f"simulation frequency = {freq:,} inst/s")
        else:
            lines.append("Finish running in less than 1 us and can not "
                         "calculate the simulation frequency")
        for line in lines:
            logger.info("%s", line)
        return lines