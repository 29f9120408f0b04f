"""LoongArch32 reduced: a minimal interpreter with its built-in program."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List

from ..cpu import Decode
from ..state import EmuState, RunState
from .pattern import bits, parse_pattern, sign_extend

MASK = 0xFFFFFFFF
NR_GPR = 32
REG_A0 = 4

REGS = (
    "$0", "ra", "tp", "sp", "a0", "a1", "a2", "a3",
    "a4", "a5", "a6", "a7", "t0", "t1", "t2", "t3",
    "t4", "t5", "t6", "t7", "t8", "rs", "fp", "s0",
    "s1", "s2", "s3", "s4", "s5", "s6", "s7", "s8",
)

LOGO = "loongarch32r manual"

# pcaddu12i $t0,0; st.w $zero,$t0,16; ld.w $a0,$t0,16; break 0; data word.
BUILTIN_IMAGE = (
    0x1C00000C,
    0x29804180,
    0x28804184,
    0x002A0000,
    0xDEADBEEF,
)


@dataclass
class LoongarchCPU:
    """General-purpose registers and pc."""

    gpr: List[int] = field(default_factory=lambda: [0] * NR_GPR)
    pc: int = 0


class _Type(enum.Enum):
    RI12 = "2RI12"
    RI20 = "1RI20"
    N = "N"


_TABLE = tuple((parse_pattern(text), name, kind) for text, name, kind in (
    ("0001110 ????? ????? ????? ????? ?????", "pcaddu12i", _Type.RI20),
    ("0010100010 ???????????? ????? ?????", "ld.w", _Type.RI12),
    ("0010100110 ???????????? ????? ?????", "st.w", _Type.RI12),
    ("0000 0000 0010 10100 ????? ????? ?????", "break", _Type.N),
    ("????????????????? ????? ????? ?????", "inv", _Type.N),
))


class Loongarch32r:
    """Fetches, decodes and executes one instruction at a time."""

    logo = LOGO
    inst_bytes_forward = False

    def __init__(self, cpu: LoongarchCPU, memory, state: EmuState) -> None:
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
        rd = bits(inst, 4, 0)
        rj = bits(inst, 9, 5)
        src1 = imm = 0
        if kind is _Type.RI20:
            imm = (sign_extend(bits(inst, 24, 5), 20) << 12) & MASK
            src1 = self.cpu.gpr[rj]
        elif kind is _Type.RI12:
            imm = sign_extend(bits(inst, 21, 10), 12) & MASK
            src1 = self.cpu.gpr[rj]

        if name == "pcaddu12i":
            self._set(rd, decode.pc + imm)
        elif name == "ld.w":
            self._set(rd, self.memory.read((src1 + imm) & MASK, 4))
        elif name == "st.w":
            self.memory.write((src1 + imm) & MASK, 4, self.cpu.gpr[rd])
        elif name == "break":
            self.state.halt(RunState.END, decode.pc, sign_extend(self.cpu.gpr[REG_A0], 32))
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