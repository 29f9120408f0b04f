import io

import pytest

from emukit.isa.riscv32_state import (
    DiffChecker,
    LOGO,
    MStatus,
    REGS,
    RiscvCPU,
    TrapTracer,
    load_builtin_image,
)
from emukit.memory import PhysicalMemory

BASE = 0x80000000


def test_mstatus_mpp_matches_machine_mode_value():
    status = MStatus()
    status.MPP = 3
    assert status.val == 0x1800
    assert MStatus(0x1800).MPP == 3


def test_mstatus_field_writes_do_not_disturb_others():
    status = MStatus(0x1800)
    status.MIE = 1
    status.MPIE = 1
    assert status.MPP == 3
    status.MIE = 0
    assert status.MPIE == 1
    assert status.MIE == 0
    status.MPIE = 0
    assert status.val == 0x1800


def test_mstatus_value_masked_to_32_bits():
    status = MStatus((1 << 40) | 0x1800)
    assert status.val == 0x1800


def test_raise_intr_updates_csrs():
    cpu = RiscvCPU()
    cpu.mtvec = BASE + 0x100
    cpu.mstatus.MIE = 1
    target = cpu.raise_intr(11, BASE + 0x10)
    assert target == BASE + 0x100
    assert cpu.mepc == BASE + 0x10
    assert cpu.mcause == 11
    assert cpu.mstatus.MPIE == 1
    assert cpu.mstatus.MIE == 0
    assert cpu.mstatus.MPP == 3


def test_raise_intr_without_vector_raises():
    cpu = RiscvCPU()
    with pytest.raises(RuntimeError):
        cpu.raise_intr(11, BASE)


def test_mret_restores_interrupt_enable():
    cpu = RiscvCPU()
    cpu.mtvec = BASE + 0x100
    cpu.mstatus.MIE = 1
    cpu.raise_intr(11, BASE + 0x20)
    resume = cpu.mret()
    assert resume == BASE + 0x20
    assert cpu.mstatus.MIE == 1
    assert cpu.mstatus.MPIE == 1
    assert cpu.mstatus.MPP == 0


def test_reg_value_lookup():
    cpu = RiscvCPU()
    cpu.gpr[10] = 42
    cpu.pc = BASE
    assert cpu.reg_value("$a0") == 42
    assert cpu.reg_value("$pc") == BASE
    assert cpu.reg_value("$$0") == 0


def test_reg_value_unknown_name():
    with pytest.raises(KeyError):
        RiscvCPU().reg_value("$nope")


def test_reg_display_lists_every_register():
    cpu = RiscvCPU()
    cpu.gpr[1] = 7
    lines = cpu.reg_display().splitlines()
    assert len(lines) == len(REGS)
    assert lines[0].startswith("$0")
    assert lines[1].split()[0] == "ra"
    assert lines[1].split()[2] == "7"


def test_load_builtin_image():
    memory = PhysicalMemory(BASE, 0x1000)
    cpu = RiscvCPU()
    cpu.gpr[0] = 5
    load_builtin_image(memory, cpu, BASE)
    assert memory.read(BASE, 4) == 0x00000297
    assert memory.read(BASE + 12, 4) == 0x00100073
    assert memory.read(BASE + 16, 4) == 0xDEADBEEF
    assert cpu.pc == BASE
    assert cpu.gpr[0] == 0
    assert cpu.mode == 3


def test_logo_shape():
    assert LOGO.endswith("\n")
    assert len(LOGO.splitlines()) == 6


def test_tracer_records_ecall_with_a7():
    out = io.StringIO()
    tracer = TrapTracer(out)
    cpu = RiscvCPU(tracer=tracer)
    cpu.mtvec = BASE + 0x100
    cpu.gpr[17] = 1
    cpu.pc = BASE + 4
    text = cpu.raise_intr(11, BASE + 4)
    assert text == BASE + 0x100
    written = out.getvalue()
    assert "#1  M-ecall" in written
    assert "a7=1" in written
    assert len(tracer.entries) == 1


def test_tracer_numbers_entries_and_names_unknown_causes():
    out = io.StringIO()
    tracer = TrapTracer(out)
    cpu = RiscvCPU(tracer=tracer)
    cpu.mtvec = BASE + 0x100
    cpu.raise_intr(11, BASE)
    cpu.raise_intr(2, BASE)
    second = tracer.entries[1].render()
    assert "#2  Unknown" in second
    assert "a7=" not in second


def test_diff_check_identical_states_pass():
    out = io.StringIO()
    ref, dut = RiscvCPU(pc=BASE + 4), RiscvCPU(pc=BASE + 4)
    assert DiffChecker(out).check(ref, dut, BASE, BASE + 4) is True
    assert out.getvalue() == ""


def test_diff_check_register_mismatch_fails():
    out = io.StringIO()
    ref, dut = RiscvCPU(pc=BASE + 4), RiscvCPU(pc=BASE + 4)
    ref.gpr[10] = 1
    assert DiffChecker(out).check(ref, dut, BASE, BASE + 4) is False
    assert "reg a0 value mismatch" in out.getvalue()


def test_diff_check_pc_mismatch_fails():
    out = io.StringIO()
    ref, dut = RiscvCPU(pc=BASE + 8), RiscvCPU()
    assert DiffChecker(out).check(ref, dut, BASE, BASE + 4) is False
    assert "csr registers:" in out.getvalue()


def test_diff_check_csr_mismatch_reported_but_not_fatal():
    out = io.StringIO()
    checker = DiffChecker(out)
    ref, dut = RiscvCPU(pc=BASE + 4), RiscvCPU(pc=BASE + 4)
    dut.mstatus = MStatus(0x1800)
    assert checker.check(ref, dut, BASE, BASE + 4) is True
    assert checker.csr_enabled is True
    assert "mstatus value mismatch" in out.getvalue()


def test_diff_check_csr_ignored_before_enabled():
    out = io.StringIO()
    checker = DiffChecker(out)
    ref, dut = RiscvCPU(pc=BASE + 4), RiscvCPU(pc=BASE + 4)
    dut.mepc = BASE
    assert checker.check(ref, dut, BASE, BASE + 4) is True
    assert "mpec" not in out.getvalue()