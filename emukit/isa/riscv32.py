"""RV32IM interpreter with machine-mode CSRs and an optional call tracer."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from ..cpu import Decode
from ..state import EmuState, RunState
from .pattern import InstructionPattern, bits, parse_pattern, sign_extend
from .riscv32_state import CAUSE_MACHINE_ECALL, LOGO, RiscvCPU

MASK = 0xFFFFFFFF
REG_RA = 1
REG_A0 = 10

CSR_MSTATUS = 0x300
CSR_MTVEC = 0x305
CSR_MEPC = 0x341
CSR_MCAUSE = 0x342


@dataclass(frozen=True)
class FunctionSymbol:
    """A function in the guest program: name, start address and size."""

    name: str
    value: int
    size: int


class FunctionTracer:
    """Records calls into and returns out of known functions, indented by depth."""

    def __init__(self, symbols: Iterable[FunctionSymbol] = ()) -> None:
        self.symbols = list(symbols)
        self.indent = 0
        self.lines: List[str] = []

    def _emit(self, pc: int, text: str) -> None:
        self.lines.append(f"0x{pc:x}: " + "  " * self.indent + text)

    def on_call(self, pc: int, target: int) -> None:
        """Note a jump from ``pc`` to ``target`` if it enters a known function."""
        for sym in self.symbols:
            if sym.value == target:
                self._emit(pc, f"call [{sym.name}@0x{target:x}]\n")
                self.indent += 1

    def on_return(self, pc: int) -> None:
        """Note a return executed at ``pc`` inside a known function."""
        for sym in self.symbols:
            if sym.value <= pc < sym.value + sym.size:
                self.indent = max(self.indent - 1, 0)
                self._emit(pc, f"ret  [{sym.name}]\n")

    @property
    def text(self) -> str:
        return "".join(self.lines)


class _Type(enum.Enum):
    I = "I"
    U = "U"
    S = "S"
    J = "J"
    B = "B"
    R = "R"
    N = "N"
    Z = "Z"


@dataclass
class _Operands:
    rd: int
    rs1: int
    src1: int = 0
    src2: int = 0
    imm: int = 0


def _decode_operands(inst: int, kind: _Type, gpr: List[int]) -> _Operands:
    ops = _Operands(rd=bits(inst, 11, 7), rs1=bits(inst, 19, 15))
    rs2 = bits(inst, 24, 20)
    if kind in (_Type.I, _Type.S, _Type.B, _Type.R, _Type.Z):
        ops.src1 = gpr[ops.rs1]
    if kind in (_Type.S, _Type.B, _Type.R):
        ops.src2 = gpr[rs2]
    if kind is _Type.I:
        imm = sign_extend(bits(inst, 31, 20), 12)
    elif kind is _Type.U:
        imm = sign_extend(bits(inst, 31, 12), 20) << 12
    elif kind is _Type.S:
        imm = (sign_extend(bits(inst, 31, 25), 7) << 5) | bits(inst, 11, 7)
    elif kind is _Type.J:
        imm = ((sign_extend(bits(inst, 31, 31), 1) << 19) | bits(inst, 19, 12) << 11
               | bits(inst, 20, 20) << 10 | bits(inst, 30, 21)) << 1
    elif kind is _Type.B:
        imm = (sign_extend(bits(inst, 31, 31), 1) << 11 | bits(inst, 7, 7) << 10
               | bits(inst, 30, 25) << 4 | bits(inst, 11, 8)) << 1
    elif kind is _Type.Z:
        imm = bits(inst, 31, 20)
    else:
        imm = 0
    ops.imm = imm & MASK
    return ops


def _s(value: int) -> int:
    return sign_extend(value, 32)


def _trunc_div(a: int, b: int) -> int:
    if b == 0:
        raise ZeroDivisionError("integer division by zero")
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


Handler = Callable[["Riscv32", Decode, _Operands], None]


def _branch(test: Callable[[int, int], bool]) -> Handler:
    def run(m: "Riscv32", d: Decode, o: _Operands) -> None:
        d.dnpc = (d.pc + o.imm) & MASK if test(o.src1, o.src2) else d.snpc
    return run


def _load(length: int, signed: bool = False) -> Handler:
    def run(m: "Riscv32", d: Decode, o: _Operands) -> None:
        value = m._read(o.src1 + o.imm, length)
        m._set(o.rd, sign_extend(value, 8 * length) if signed else value)
    return run


def _store(length: int) -> Handler:
    def run(m: "Riscv32", d: Decode, o: _Operands) -> None:
        m.memory.write((o.src1 + o.imm) & MASK, length, o.src2)
    return run


def _alu(op: Callable[[_Operands], int]) -> Handler:
    def run(m: "Riscv32", d: Decode, o: _Operands) -> None:
        m._set(o.rd, op(o))
    return run


def _csr(combine: Callable[[int, int], int]) -> Handler:
    def run(m: "Riscv32", d: Decode, o: _Operands) -> None:
        old = m._csr_get(o.imm)
        m._csr_set(o.imm, combine(o.src1, old))
        m._set(o.rd, old)
    return run


def _jal(m: "Riscv32", d: Decode, o: _Operands) -> None:
    m._set(o.rd, d.snpc)
    d.dnpc = (d.pc + o.imm) & MASK
    if m.tracer is not None:
        m.tracer.on_call(d.pc, d.dnpc)


def _jalr(m: "Riscv32", d: Decode, o: _Operands) -> None:
    m._set(o.rd, d.snpc)
    d.dnpc = (o.src1 + o.imm) & MASK
    if m.tracer is not None:
        if o.rs1 == REG_RA:
            m.tracer.on_return(d.pc)
        else:
            m.tracer.on_call(d.pc, d.dnpc)


def _ecall(m: "Riscv32", d: Decode, o: _Operands) -> None:
    d.dnpc = m.cpu.raise_intr(CAUSE_MACHINE_ECALL, d.pc)


def _mret(m: "Riscv32", d: Decode, o: _Operands) -> None:
    d.dnpc = m.cpu.mret()


def _ebreak(m: "Riscv32", d: Decode, o: _Operands) -> None:
    m.state.halt(RunState.END, d.pc, _s(m.cpu.gpr[REG_A0]))


def _inv(m: "Riscv32", d: Decode, o: _Operands) -> None:
    words = (m.memory.fetch(d.pc, 4), m.memory.fetch((d.pc + 4) & MASK, 4))
    m.state.invalid_instruction(d.pc, words, LOGO)


def _shamt(value: int) -> int:
    return value & 0x1F


_TABLE_SPEC = (
    ("??????? ????? ????? ??? ????? 00101 11", "auipc", _Type.U, lambda m, d, o: m._set(o.rd, d.pc + o.imm)),
    ("??????? ????? ????? ??? ????? 01101 11", "lui", _Type.U, _alu(lambda o: o.imm)),
    ("??????? ????? ????? 100 ????? 00000 11", "lbu", _Type.I, _load(1)),
    ("??????? ????? ????? ??? ????? 11011 11", "jal", _Type.J, _jal),
    ("??????? ????? ????? 000 ????? 11001 11", "jalr", _Type.I, _jalr),
    ("??????? ????? ????? 000 ????? 01000 11", "sb", _Type.S, _store(1)),
    ("??????? ????? ????? 001 ????? 01000 11", "sh", _Type.S, _store(2)),
    ("??????? ????? ????? 010 ????? 01000 11", "sw", _Type.S, _store(4)),
    ("??????? ????? ????? 011 ????? 01000 11", "sd", _Type.S, _store(8)),
    ("??????? ????? ????? 000 ????? 11000 11", "beq", _Type.B, _branch(lambda a, b: a == b)),
    ("??????? ????? ????? 001 ????? 11000 11", "bne", _Type.B, _branch(lambda a, b: a != b)),
    ("??????? ????? ????? 101 ????? 11000 11", "bge", _Type.B, _branch(lambda a, b: _s(a) >= _s(b))),
    ("??????? ????? ????? 111 ????? 11000 11", "bgeu", _Type.B, _branch(lambda a, b: a >= b)),
    ("??????? ????? ????? 100 ????? 11000 11", "blt", _Type.B, _branch(lambda a, b: _s(a) < _s(b))),
    ("??????? ????? ????? 110 ????? 11000 11", "bltu", _Type.B, _branch(lambda a, b: a < b)),
    ("??????? ????? ????? 000 ????? 00100 11", "addi", _Type.I, _alu(lambda o: o.src1 + o.imm)),
    ("??????? ????? ????? 000 ????? 00000 11", "lb", _Type.I, _load(1, signed=True)),
    ("??????? ????? ????? 001 ????? 00000 11", "lh", _Type.I, _load(2, signed=True)),
    ("??????? ????? ????? 101 ????? 00000 11", "lhu", _Type.I, _load(2)),
    ("??????? ????? ????? 010 ????? 00000 11", "lw", _Type.I, _load(4)),
    ("??????? ????? ????? 011 ????? 00000 11", "ld", _Type.I, _load(8)),
    ("??????? ????? ????? 010 ????? 00100 11", "slti", _Type.I, _alu(lambda o: int(_s(o.src1) < _s(o.imm)))),
    ("??????? ????? ????? 011 ????? 00100 11", "sltiu", _Type.I, _alu(lambda o: int(o.src1 < o.imm))),
    ("0000000 ????? ????? 001 ????? 00100 11", "slli", _Type.I, _alu(lambda o: o.src1 << _shamt(o.imm))),
    ("0000000 ????? ????? 101 ????? 00100 11", "srli", _Type.I, _alu(lambda o: o.src1 >> _shamt(o.imm))),
    ("??????? ????? ????? 111 ????? 00100 11", "andi", _Type.I, _alu(lambda o: o.src1 & o.imm)),
    ("0100000 ????? ????? 101 ????? 00100 11", "srai", _Type.I, _alu(lambda o: _s(o.src1) >> _shamt(o.imm))),
    ("??????? ????? ????? 100 ????? 00100 11", "xori", _Type.I, _alu(lambda o: o.src1 ^ o.imm)),
    ("??????? ????? ????? 110 ????? 00100 11", "ori", _Type.I, _alu(lambda o: o.src1 | o.imm)),
    ("0000000 ????? ????? 000 ????? 01100 11", "add", _Type.R, _alu(lambda o: o.src1 + o.src2)),
    ("0100000 ????? ????? 000 ????? 01100 11", "sub", _Type.R, _alu(lambda o: o.src1 - o.src2)),
    ("0100000 ????? ????? 101 ????? 01100 11", "sra", _Type.R, _alu(lambda o: _s(o.src1) >> _shamt(o.src2))),
    ("0000000 ????? ????? 001 ????? 01100 11", "sll", _Type.R, _alu(lambda o: o.src1 << _shamt(o.src2))),
    ("0000000 ????? ????? 101 ????? 01100 11", "srl", _Type.R, _alu(lambda o: o.src1 >> _shamt(o.src2))),
    ("0000000 ????? ????? 010 ????? 01100 11", "slt", _Type.R, _alu(lambda o: int(_s(o.src1) < _s(o.src2)))),
    ("0000000 ????? ????? 011 ????? 01100 11", "sltu", _Type.R, _alu(lambda o: int(o.src1 < o.src2))),
    ("0000001 ????? ????? 000 ????? 01100 11", "mul", _Type.R, _alu(lambda o: o.src1 * o.src2)),
    ("0000001 ????? ????? 001 ????? 01100 11", "mulh", _Type.R, _alu(lambda o: (_s(o.src1) * _s(o.src2)) >> 32)),
    ("0000001 ????? ????? 011 ????? 01100 11", "mulhu", _Type.R, _alu(lambda o: (o.src1 * o.src2) >> 32)),
    ("0000001 ????? ????? 100 ????? 01100 11", "div", _Type.R, _alu(lambda o: _trunc_div(_s(o.src1), _s(o.src2)))),
    ("0000001 ????? ????? 101 ????? 01100 11", "divu", _Type.R, _alu(lambda o: o.src1 // o.src2)),
    ("0000001 ????? ????? 110 ????? 01100 11", "rem", _Type.R,
     _alu(lambda o: _s(o.src1) - _s(o.src2) * _trunc_div(_s(o.src1), _s(o.src2)))),
    ("0000001 ????? ????? 111 ????? 01100 11", "remu", _Type.R, _alu(lambda o: o.src1 % o.src2)),
    ("0000000 ????? ????? 111 ????? 01100 11", "and", _Type.R, _alu(lambda o: o.src1 & o.src2)),
    ("0000000 ????? ????? 110 ????? 01100 11", "or", _Type.R, _alu(lambda o: o.src1 | o.src2)),
    ("0000000 ????? ????? 100 ????? 01100 11", "xor", _Type.R, _alu(lambda o: o.src1 ^ o.src2)),
    ("??????? ????? ????? 001 ????? 11100 11", "csrw", _Type.Z, _csr(lambda new, old: new)),
    ("??????? ????? ????? 010 ????? 11100 11", "csrr", _Type.Z, _csr(lambda new, old: new | old)),
    ("0000000 00000 00000 000 00000 11100 11", "ecall", _Type.N, _ecall),
    ("0011000 00010 00000 000 00000 11100 11", "mret", _Type.N, _mret),
    ("0000000 00001 00000 000 00000 11100 11", "ebreak", _Type.N, _ebreak),
    ("??????? ????? ????? ??? ????? ????? ??", "inv", _Type.N, _inv),
)

_TABLE = tuple((parse_pattern(text), name, kind, handler)
               for text, name, kind, handler in _TABLE_SPEC)


class Riscv32:
    """Fetches, decodes and executes one RV32 instruction at a time."""

    logo = LOGO
    inst_bytes_forward = False

    def __init__(self, cpu: RiscvCPU, memory, state: EmuState,
                 tracer: Optional[FunctionTracer] = None) -> None:
        self.cpu = cpu
        self.memory = memory
        self.state = state
        self.tracer = tracer

    def _set(self, idx: int, value: int) -> None:
        self.cpu.gpr[idx] = value & MASK

    def _read(self, addr: int, length: int) -> int:
        return self.memory.read(addr & MASK, length) & MASK

    def _csr_get(self, num: int) -> int:
        if num == CSR_MSTATUS:
            return self.cpu.mstatus.val
        if num == CSR_MTVEC:
            return self.cpu.mtvec
        if num == CSR_MEPC:
            return self.cpu.mepc
        if num == CSR_MCAUSE:
            return self.cpu.mcause
        raise ValueError(f"unsupported CSR 0x{num:x}")

    def _csr_set(self, num: int, value: int) -> None:
        value &= MASK
        if num == CSR_MSTATUS:
            self.cpu.mstatus.val = value
        elif num == CSR_MTVEC:
            self.cpu.mtvec = value
        elif num == CSR_MEPC:
            self.cpu.mepc = value
        elif num == CSR_MCAUSE:
            self.cpu.mcause = value
        else:
            raise ValueError(f"unsupported CSR 0x{num:x}")

    def exec_once(self, decode: Decode) -> str:
        """Execute the instruction at ``decode.snpc``; return its mnemonic."""
        decode.inst = self.memory.fetch(decode.snpc, 4)
        decode.snpc = (decode.snpc + 4) & MASK
        decode.dnpc = decode.snpc
        inst = decode.inst
        name = "inv"
        for pattern, name, kind, handler in _TABLE:
            if pattern.matches(inst):
                handler(self, decode, _decode_operands(inst, kind, self.cpu.gpr))
                break
        self.cpu.gpr[0] = 0
        return name

    def reg_display(self) -> str:
        """The register dump of the CPU."""
        return self.cpu.reg_display()


__all__ = ["FunctionSymbol", "FunctionTracer", "InstructionPattern", "Riscv32"]