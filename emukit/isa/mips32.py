"""MIPS32: a minimal interpreter with its built-in program."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List

from ..cpu import Decode
from ..state import EmuState, RunState
from .pattern import bits, parse_pattern, sign_extend

MASK = 0xFFFFFFFF
NR_GPR = 32
NR_PAD = 5
REG_V0 = 2

REGS = (
    "$0", "at", "v0", "v1", "a0", "a1", "a2", "a3",
    "t0", "t1", "t2", "t3", "t4", "t5", "t6", "t7",
    "s0", "s1", "s2", "s3", "s4", "s5", "s6", "s7",
    "t8", "t9", "k0", "k1", "gp", "sp", "s8", "ra",
)

LOGO = "\n".join((
    r"            _           ____ ___    __  __                         _ ",
    r"           (_)         |___ \__ \  |  \/  |                       | |",
    r"  _ __ ___  _ _ __  ___  __) | ) | | \  / | __ _ _ __  _   _  __ _| |",
    r" | '_ ` _ \| | '_ \/ __||__ < / /  | |\/| |/ _` | '_ \| | | |/ _` | |",
    r" | | | | | | | |_) \__ \___) / /_  | |  | | (_| | | | | |_| | (_| | |",
    r" |_| |_| |_|_| .__/|___/____/____| |_|  |_|\__,_|_| |_|\__,_|\__,_|_|",
    r"             | |                                                     ",
    r"             |_|                                                     ",
)) + "\n"

# lui a0,0x8000; sw zero,0(a0); lw v0,0(a0); sdbbp.
BUILTIN_IMAGE = (
    0x3C048000,
    0xAC800000,
    0x8C820000,
    0x7000003F,
)


@dataclass
class MipsCPU:
    """General-purpose registers, five reserved words and the pc."""

    gpr: List[int] = field(default_factory=lambda: [0] * NR_GPR)
    pad: List[int] = field(default_factory=lambda: [0] * NR_PAD)
    pc: int = 0


class _Type(enum.Enum):
    I = "I"
    U = "U"
    N = "N"


_TABLE = tuple((parse_pattern(text), name, kind) for text, name, kind in (
    ("001111 ????? ????? ????? ????? ??????", "lui", _Type.U),
    ("100011 ????? ????? ????? ????? ??????", "lw", _Type.I),
    ("101011 ????? ????? ????? ????? ??????", "sw", _Type.I),
    ("011100 ????? ????? ????? ????? 111111", "sdbbp", _Type.N),
    ("?????? ????? ????? ????? ????? ??????", "inv", _Type.N),
))


class Mips32:
    """Fetches, decodes and executes one instruction at a time."""

    logo = LOGO
    inst_bytes_forward = False

    def __init__(self, cpu: MipsCPU, memory, state: EmuState) -> None:
        self.cpu = cpu
        self.memory = memory
        self.state = state

    def _set(self, idx: int, value: int) -> None:
        self.cpu.gpr[idx] = value & MASK

    def exec_once(self, decode: Decode) -> str:
        """Execute the instruction at ``decode.snpc``; return its mnemonic."""
        inst = self.memory.fetch(decode.snpc, 4)
        decode.inst = inst
        decode.snpc = (decode.snpc + 4) & MASK
        decode.dnpc = decode.snpc

        name, kind = next((n, k) for p, n, k in _TABLE if p.matches(inst))
        rt = bits(inst, 20, 16)
        rs = bits(inst, 25, 21)
        rd = rt if kind in (_Type.I, _Type.U) else bits(inst, 15, 11)
        src1 = imm = 0
        if kind is _Type.I:
            src1 = self.cpu.gpr[rs]
            imm = sign_extend(bits(inst, 15, 0), 16) & MASK
        elif kind is _Type.U:
            src1 = self.cpu.gpr[rs]
            imm = bits(inst, 15, 0)

        if name == "lui":
            self._set(rd, imm << 16)
        elif name == "lw":
            self._set(rd, self.memory.read((src1 + imm) & MASK, 4))
        elif name == "sw":
            self.memory.write((src1 + imm) & MASK, 4, self.cpu.gpr[rd])
        elif name == "sdbbp":
            self.state.halt(RunState.END, decode.pc, sign_extend(self.cpu.gpr[REG_V0], 32))
        else:
            words = (self.memory.fetch(decode.pc, 4),
                     self.memory.fetch((decode.pc + 4) & MASK, 4))
            self.state.invalid_instruction(decode.pc, words, LOGO)

        self.cpu.gpr[0] = 0
        return name

    def load_builtin_image(self, reset_vector: int) -> None:
        """Place the built-in program at ``reset_vector`` and reset the CPU to it."""
        image = b"".join(word.to_bytes(4, "little") for word in BUILTIN_IMAGE)
        self.memory.load(reset_vector, image)
        self.cpu.pc = reset_vector
        self.cpu.gpr[0] = 0

    def raise_intr(self, no: int, epc: int) -> int:
        """Exceptions are not modelled on this target; the vector is always 0."""
        return 0

    def reg_display(self) -> str:
        """This target produces no register dump."""
        return ""