"""RISC-V 32 architectural state: registers, machine CSRs, traps and checks."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import List, Optional, TextIO

NR_GPR = 32
WORD_MASK = 0xFFFFFFFF

REGS = (
    "$0", "ra", "sp", "gp", "tp", "t0", "t1", "t2",
    "s0", "s1", "a0", "a1", "a2", "a3", "a4", "a5",
    "a6", "a7", "s2", "s3", "s4", "s5", "s6", "s7",
    "s8", "s9", "s10", "s11", "t3", "t4", "t5", "t6",
)

CAUSE_USER_ECALL = 8
CAUSE_SUPERVISOR_ECALL = 9
CAUSE_MACHINE_ECALL = 11
CAUSE_LOAD_PAGE_FAULT = 13

PRV_U = 0
PRV_S = 1
PRV_M = 3

CAUSE_NAMES = {
    CAUSE_USER_ECALL: "U-ecall",
    CAUSE_SUPERVISOR_ECALL: "S-ecall",
    CAUSE_MACHINE_ECALL: "M-ecall",
    CAUSE_LOAD_PAGE_FAULT: "Page Fault",
}

_ECALL_CAUSES = frozenset({CAUSE_USER_ECALL, CAUSE_SUPERVISOR_ECALL, CAUSE_MACHINE_ECALL})

# Built-in program: auipc t0,0; sb zero,16(t0); lbu a0,16(t0); ebreak; data word.
BUILTIN_IMAGE = (
    0x00000297,
    0x00028823,
    0x0102C503,
    0x00100073,
    0xDEADBEEF,
)

LOGO = "\n".join((
    r"       _                         __  __                         _ ",
    r"      (_)                       |  \/  |                       | |",
    r"  _ __ _ ___  ___ ________   __ | \  / | __ _ _ __  _   _  __ _| |",
    r" | '__| / __|/ __|______\ \ / / | |\/| |/ _` | '_ \| | | |/ _` | |",
    r" | |  | \__ \ (__        \ V /  | |  | | (_| | | | | |_| | (_| | |",
    r" |_|  |_|___/\___|        \_/   |_|  |_|\__,_|_| |_|\__,_|\__,_|_|",
)) + "\n"


class _BitField:
    """A ``width``-bit field starting at bit ``lo`` of the owner's ``val``."""

    def __init__(self, lo: int, width: int = 1) -> None:
        self.lo = lo
        self.mask = (1 << width) - 1

    def __get__(self, obj, owner=None):
        if obj is None:
            return self
        return (obj.val >> self.lo) & self.mask

    def __set__(self, obj, value: int) -> None:
        cleared = obj.val & ~(self.mask << self.lo)
        obj.val = (cleared | ((value & self.mask) << self.lo)) & WORD_MASK


@dataclass
class MStatus:
    """The machine status register, readable whole or field by field."""

    val: int = 0

    WPRI_0 = _BitField(0)
    SIE = _BitField(1)
    WPRI = _BitField(2)
    MIE = _BitField(3)
    WPRI_4 = _BitField(4)
    SPIE = _BitField(5)
    UBE = _BitField(6)
    MPIE = _BitField(7)
    SPP = _BitField(8)
    VS = _BitField(9, 2)
    MPP = _BitField(11, 2)
    FS = _BitField(13, 2)
    XS = _BitField(15, 2)
    MPRV = _BitField(17)
    SUM = _BitField(18)
    MXR = _BitField(19)
    TVM = _BitField(20)
    TW = _BitField(21)
    TSR = _BitField(22)
    WPRI_23_30 = _BitField(23, 8)
    SD = _BitField(31)

    def __post_init__(self) -> None:
        self.val &= WORD_MASK


def _signed32(value: int) -> int:
    value &= WORD_MASK
    return value - (1 << 32) if value & 0x80000000 else value


def _alt_hex(value: int) -> str:
    """Hex in the alternate form, where zero carries no prefix."""
    return f"{value:#x}" if value else "0"


@dataclass
class _TrapEntry:
    seqnr: int
    pre_pc: int
    cur_pc: int
    mcause: int
    pre_mode: int
    cur_mode: int
    mepc: int
    mstatus: int
    a7: int

    def render(self) -> str:
        cause = CAUSE_NAMES.get(self.mcause, "Unknown")
        text = (f"[etrace] #{self.seqnr}  {cause} @ 0x{self.pre_pc:x} -> 0x{self.cur_pc:x}"
                f" (mepc=0x{self.mepc:x}")
        if self.mcause in _ECALL_CAUSES:
            text += f", a7={_signed32(self.a7)}"
        text += ")\n"
        text += (f"         pre_mode={self.pre_mode}, cur_mode={self.cur_mode}, "
                 f"mstatus=0x{self.mstatus:x}\n")
        return text


class TrapTracer:
    """Numbers and prints every trap the CPU takes."""

    def __init__(self, output: Optional[TextIO] = None) -> None:
        self.output = output
        self.entries: List[_TrapEntry] = []

    def record(self, cpu: "RiscvCPU", pre_pc: int) -> str:
        """Log the trap just taken by ``cpu`` from ``pre_pc`` and return the text."""
        entry = _TrapEntry(
            seqnr=len(self.entries) + 1,
            pre_pc=pre_pc,
            cur_pc=cpu.mtvec,
            mcause=cpu.mcause,
            pre_mode=cpu.mstatus.MPP,
            cur_mode=PRV_M,
            mepc=cpu.mepc,
            mstatus=cpu.mstatus.val,
            a7=cpu.gpr[17],
        )
        self.entries.append(entry)
        text = entry.render()
        stream = self.output if self.output is not None else sys.stdout
        stream.write(text)
        return text


@dataclass
class RiscvCPU:
    """General-purpose registers, pc and the machine-mode CSRs."""

    gpr: List[int] = field(default_factory=lambda: [0] * NR_GPR)
    pc: int = 0
    mstatus: MStatus = field(default_factory=MStatus)
    mtvec: int = 0
    mepc: int = 0
    mcause: int = 0
    mode: int = 0
    tracer: Optional[TrapTracer] = field(default=None, repr=False, compare=False)

    def reg_display(self) -> str:
        """One line per register: name, hex value and unsigned value."""
        return "".join(
            f"{name:<10}  0x{value & WORD_MASK:016x}  {value & WORD_MASK:<18}\n"
            for name, value in zip(REGS, self.gpr)
        )

    def reg_value(self, name: str) -> int:
        """Value of the register written ``$name``; ``$pc`` gives the pc."""
        key = name[1:] if name.startswith("$") else name
        if key in REGS:
            return self.gpr[REGS.index(key)]
        if key == "pc":
            return self.pc
        raise KeyError(f"unknown register {name!r}")

    def raise_intr(self, no: int, epc: int) -> int:
        """Enter a machine-mode trap with cause ``no``; return the vector address."""
        self.mepc = epc
        self.mcause = no
        self.mstatus.MPIE = self.mstatus.MIE
        self.mstatus.MIE = 0
        self.mstatus.MPP = PRV_M
        if not self.mtvec:
            raise RuntimeError("mtvec is NULL")
        if self.tracer is not None:
            self.tracer.record(self, self.pc)
        return self.mtvec

    def mret(self) -> int:
        """Return from a machine-mode trap; give the address to resume at."""
        self.mstatus.MIE = self.mstatus.MPIE
        self.mstatus.MPIE = 1
        self.mstatus.MPP = PRV_U
        return self.mepc


def load_builtin_image(memory, cpu: RiscvCPU, reset_vector: int) -> None:
    """Place the built-in program at ``reset_vector`` and reset the CPU to it."""
    image = b"".join(word.to_bytes(4, "little") for word in BUILTIN_IMAGE)
    memory.load(reset_vector, image)
    cpu.pc = reset_vector
    cpu.gpr[0] = 0
    cpu.mode = PRV_M


class DiffChecker:
    """Compares this CPU with a reference after each step."""

    def __init__(self, output: Optional[TextIO] = None) -> None:
        self.output = output
        self.csr_enabled = False

    def _say(self, text: str) -> None:
        stream = self.output if self.output is not None else sys.stdout
        stream.write(text)

    def check(self, ref: RiscvCPU, dut: RiscvCPU, pc: int, npc: int) -> bool:
        """True if the registers agree and the reference pc equals ``npc``."""
        ok = True
        for name, ref_val, dut_val in zip(REGS, ref.gpr, dut.gpr):
            if ref_val != dut_val:
                self._say(f"reg {name} value mismatch: ref = {_alt_hex(ref_val)}, "
                          f"dut = {_alt_hex(dut_val)}, pc = {_alt_hex(pc)}\n")
                ok = False

        if dut.mstatus.val == 0x1800:
            self.csr_enabled = True

        if self.csr_enabled:
            if ref.mstatus.val != dut.mstatus.val:
                self._say(f"mstatus value mismatch: ref = {_alt_hex(ref.mstatus.val)}, "
                          f"dut = {_alt_hex(dut.mstatus.val)}, pc = {_alt_hex(pc)}\n")
            if ref.mepc != dut.mepc:
                self._say(f"mpec value mismatch: ref = {_alt_hex(ref.mepc)}, "
                          f"dut = {_alt_hex(dut.mepc)}, pc = {_alt_hex(pc)}\n")

        if ref.pc != npc:
            self._say(f"ref pc = {_alt_hex(ref.pc)}  dut pc = {_alt_hex(npc)}\n")
            self._say("csr registers:\n")
            self._say(f"mtvec = {_alt_hex(dut.mtvec)}\n")
            self._say(f"mepc = {_alt_hex(dut.mepc)}\n")
            self._say(f"mcause = {_alt_hex(dut.mcause)}\n")
            ok = False
        return ok