import io
from types import SimpleNamespace

import pytest

from emukit.isa.mips32 import BUILTIN_IMAGE, LOGO, REGS, Mips32, MipsCPU
from emukit.memory import OutOfBoundError, PhysicalMemory
from emukit.state import EmuState, RunState

BASE = 0x80000000


def i_type(op, rs, rt, imm):
    return (op << 26) | (rs << 21) | (rt << 16) | (imm & 0xFFFF)


def make(size=0x1000):
    out = io.StringIO()
    state = EmuState(output=out)
    mem = PhysicalMemory(BASE, size)
    machine = Mips32(MipsCPU(), mem, state)
    return machine, mem, state, out


def put(mem, addr, *words):
    mem.load(addr, b"".join(w.to_bytes(4, "little") for w in words))


def step(machine):
    d = SimpleNamespace(pc=machine.cpu.pc, snpc=machine.cpu.pc, dnpc=0, inst=0)
    name = machine.exec_once(d)
    machine.cpu.pc = d.dnpc
    return name, d


def test_builtin_image_runs_to_good_trap():
    machine, mem, state, _ = make()
    machine.load_builtin_image(BASE)
    state.state = RunState.RUNNING
    names = [step(machine)[0] for _ in range(len(BUILTIN_IMAGE))]
    assert names == ["lui", "sw", "lw", "sdbbp"]
    assert state.state is RunState.END
    assert state.halt_pc == BASE + 12
    assert state.halt_ret == 0
    assert machine.cpu.gpr[4] == BASE


def test_load_builtin_image_places_words_and_resets_pc():
    machine, mem, _, _ = make()
    machine.cpu.gpr[0] = 7
    machine.load_builtin_image(BASE)
    assert machine.cpu.pc == BASE
    assert machine.cpu.gpr[0] == 0
    assert [mem.read(BASE + 4 * i, 4) for i in range(4)] == list(BUILTIN_IMAGE)


def test_lui_shifts_immediate_and_advances_pc():
    machine, mem, _, _ = make()
    put(mem, BASE, i_type(0x0F, 0, 4, 0x1234))
    machine.cpu.pc = BASE
    name, d = step(machine)
    assert name == "lui"
    assert machine.cpu.gpr[4] == 0x1234 << 16
    assert d.snpc == BASE + 4
    assert d.dnpc == BASE + 4


def test_store_then_load_round_trip():
    machine, mem, _, _ = make()
    machine.cpu.gpr[4] = BASE + 0x100
    machine.cpu.gpr[5] = 0xCAFEF00D
    put(mem, BASE, i_type(0x2B, 4, 5, 8), i_type(0x23, 4, 6, 8))
    machine.cpu.pc = BASE
    assert step(machine)[0] == "sw"
    assert mem.read(BASE + 0x108, 4) == 0xCAFEF00D
    assert step(machine)[0] == "lw"
    assert machine.cpu.gpr[6] == 0xCAFEF00D


def test_negative_offset_is_sign_extended():
    machine, mem, _, _ = make()
    machine.cpu.gpr[4] = BASE + 0x200
    machine.cpu.gpr[5] = 0x11223344
    put(mem, BASE, i_type(0x2B, 4, 5, -4))
    machine.cpu.pc = BASE
    step(machine)
    assert mem.read(BASE + 0x200 - 4, 4) == 0x11223344


def test_zero_register_stays_zero():
    machine, mem, _, _ = make()
    put(mem, BASE, i_type(0x0F, 0, 0, 0xFFFF))
    machine.cpu.pc = BASE
    step(machine)
    assert machine.cpu.gpr[0] == 0


def test_sdbbp_returns_signed_v0():
    machine, mem, state, _ = make()
    machine.cpu.gpr[2] = 0xFFFFFFFF
    put(mem, BASE, BUILTIN_IMAGE[3])
    machine.cpu.pc = BASE
    step(machine)
    assert state.state is RunState.END
    assert state.halt_ret == -1


def test_invalid_instruction_aborts():
    machine, mem, state, out = make()
    put(mem, BASE, 0xFFFFFFFF, 0)
    machine.cpu.pc = BASE
    name, _ = step(machine)
    assert name == "inv"
    assert state.state is RunState.ABORT
    assert state.halt_pc == BASE
    assert state.halt_ret == -1
    assert "invalid opcode" in out.getvalue()
    assert LOGO in out.getvalue()


def test_load_outside_memory_raises():
    machine, mem, _, _ = make()
    put(mem, BASE, i_type(0x23, 0, 2, 0))
    machine.cpu.pc = BASE
    with pytest.raises(OutOfBoundError) as excinfo:
        step(machine)
    assert excinfo.type is OutOfBoundError
    assert machine.cpu.gpr[2] == 0
    assert machine.cpu.pc == BASE


def test_raise_intr_and_reg_display():
    machine, _, _, _ = make()
    assert machine.raise_intr(11, BASE) == 0
    assert machine.reg_display() == ""


def test_cpu_layout_and_register_names():
    cpu = MipsCPU()
    assert len(cpu.gpr) == 32
    assert len(cpu.pad) == 5
    assert REGS[2] == "v0"
    assert REGS[31] == "ra"
    assert LOGO.endswith("\n")
    assert len(LOGO.splitlines()) == 8