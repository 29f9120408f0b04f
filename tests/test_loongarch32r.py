import io

from emukit.cpu import Decode
from emukit.isa.loongarch32r import BUILTIN_IMAGE, LoongarchCPU, Loongarch32r
from emukit.memory import PhysicalMemory
from emukit.state import EmuState, RunState

BASE = 0x1C000000
SIZE = 0x1000
MASK = 0xFFFFFFFF


def ri12(opcode10, si12, rj, rd):
    return (opcode10 << 22) | ((si12 & 0xFFF) << 10) | (rj << 5) | rd


def ld_w(rd, rj, si12):
    return ri12(0b0010100010, si12, rj, rd)


def st_w(rd, rj, si12):
    return ri12(0b0010100110, si12, rj, rd)


def pcaddu12i(rd, si20):
    return (0b0001110 << 25) | ((si20 & 0xFFFFF) << 5) | rd


BREAK = 0x002A0000


def make(output=None):
    memory = PhysicalMemory(BASE, SIZE)
    cpu = LoongarchCPU(pc=BASE)
    state = EmuState(state=RunState.RUNNING, output=output)
    return Loongarch32r(cpu, memory, state)


def step(isa):
    d = Decode(pc=isa.cpu.pc, snpc=isa.cpu.pc)
    isa.exec_once(d)
    isa.cpu.pc = d.dnpc
    return d


def run(isa, *insts):
    isa.memory.load(isa.cpu.pc, b"".join(i.to_bytes(4, "little") for i in insts))
    for _ in insts:
        step(isa)


def test_builtin_image_hits_good_trap():
    isa = make()
    isa.load_builtin_image(BASE)
    assert isa.memory.read(BASE + 16, 4) == BUILTIN_IMAGE[4]
    for _ in range(4):
        step(isa)
    assert isa.state.state is RunState.END
    assert isa.state.halt_ret == 0
    assert isa.state.halt_pc == BASE + 12
    assert isa.memory.read(BASE + 16, 4) == 0


def test_pcaddu12i_adds_shifted_immediate():
    isa = make()
    run(isa, pcaddu12i(12, 1))
    assert isa.cpu.gpr[12] == BASE + (1 << 12)


def test_store_load_round_trip_with_negative_offset():
    isa = make()
    isa.cpu.gpr[5] = BASE + 0x100
    isa.cpu.gpr[6] = 0xCAFEF00D
    run(isa, st_w(6, 5, -4), ld_w(7, 5, -4))
    assert isa.cpu.gpr[7] == 0xCAFEF00D
    assert isa.memory.read(BASE + 0x100 - 4, 4) == 0xCAFEF00D


def test_zero_register_stays_zero():
    isa = make()
    run(isa, pcaddu12i(0, 3))
    assert isa.cpu.gpr[0] == 0


def test_break_uses_a0_signed():
    isa = make()
    isa.cpu.gpr[4] = MASK
    run(isa, BREAK)
    assert isa.state.state is RunState.END
    assert isa.state.halt_ret == -1
    assert isa.state.halt_pc == BASE


def test_invalid_instruction_aborts():
    out = io.StringIO()
    isa = make(output=out)
    step(isa)
    assert isa.state.state is RunState.ABORT
    assert "loongarch32r manual" in out.getvalue()


def test_exec_once_reports_mnemonic():
    isa = make()
    isa.memory.load(BASE, BREAK.to_bytes(4, "little"))
    d = Decode(pc=BASE, snpc=BASE)
    assert isa.exec_once(d) == "break"
    assert d.dnpc == BASE + 4


def test_raise_intr_vector_is_zero():
    isa = make()
    assert isa.raise_intr(11, BASE) == 0