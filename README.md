# emukit

A compact emulator toolkit for teaching-sized guest machines. It provides
the pieces needed to run a small program on a simulated 32-bit CPU:

- `emukit.state`: the run state (`RunState`, `EmuState`). `EmuState.halt`
  records where and how the guest stopped. `EmuState.invalid_instruction`
  prints a report for an unknown opcode and aborts the machine. The same
  report text is available from `format_invalid_instruction`.
- `emukit.memory`: `PhysicalMemory`, a little-endian guest RAM.
  - It supports accesses of 1, 2, 4 or 8 bytes.
  - Accesses outside RAM go to an MMIO bus if one is given.
  - Otherwise they raise `OutOfBoundError`.
  - Setting its `trace` attribute to a text stream logs every read and write.
- `emukit.iomap`: the classes that wire devices to addresses.
  - `SpaceAllocator` hands out register space from a bounded pool.
  - `IOMap` is one device window that calls its device back on every access.
  - `MMIOBus` and `PortIOBus` check each new map for overlap and bounds and
    raise `DeviceError` on a bad map or access. Each bus holds at most 16 maps.
- `emukit.cpu`: `Executor` runs an ISA one instruction at a time.
  - Each instruction leaves a trace line (`format_itrace`), kept in an
    `InstructionRing` of the last 20.
  - Optional hooks `difftest` and `watchpoints` run after each step.
  - `statistics()` returns the host time, instruction count and speed.
- `emukit.devices`: guest devices.
  - `serial.Serial` is a transmit-only UART that writes to a stream.
  - `timer.RTC` holds the uptime in microseconds, and
    `timer.AlarmRegistry` fires handlers on a virtual-time alarm.
  - `keyboard.Keyboard` is a queued key-event data port.
  - `vga.VGA` has a size register, a sync register and a framebuffer.
  - `audio.Audio` has control registers and a stream buffer.
  - `hub.DeviceHub` refreshes the screen and dispatches host input `Event`s.
- `emukit.isa`: guest instruction sets.
  - `riscv32.Riscv32` runs RV32IM with machine-mode CSRs, `ecall` and `mret`,
    and has an optional `FunctionTracer`.
  - `riscv32_state` holds `RiscvCPU`, `MStatus`, `TrapTracer`, `DiffChecker`
    and `load_builtin_image`.
  - `loongarch32r.Loongarch32r` and `mips32.Mips32` are minimal interpreters.
  - All of them decode with the bit-pattern matcher in `emukit.isa.pattern`
    (`parse_pattern`, `bits`, `sign_extend`).

## Installing

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Example

```python
from emukit.state import EmuState, RunState
from emukit.iomap import MMIOBus
from emukit.memory import PhysicalMemory
from emukit.isa.riscv32_state import RiscvCPU, load_builtin_image
from emukit.isa.riscv32 import Riscv32
from emukit.cpu import Executor

base, size = 0x80000000, 0x100000
bus = MMIOBus(base, base + size - 1)
memory = PhysicalMemory(base, size, bus)

state = EmuState()
cpu = RiscvCPU()
load_builtin_image(memory, cpu, base)

executor = Executor(Riscv32(cpu, memory, state), state, None)
executor.run(100)

assert state.state is RunState.END
print(state.halt_ret)        # value of a0 at the trap; 0 means a good trap
print(executor.statistics())
```

The built-in RISC-V image does the following:

1. It stores a zero byte.
2. It loads that byte back into `a0`.
3. It executes `ebreak`, which halts the machine with a good trap.

`Loongarch32r` and `Mips32` have their own `load_builtin_image(reset_vector)`
methods.

## Devices

Each device attaches itself to a bus at the address you choose:

```python
import sys
from emukit.devices.serial import Serial

Serial(sys.stderr).attach(bus, 0xA00003F8)
```

A guest store of one byte to that address writes the character to the
stream.

Some devices hand their output to a callback instead of doing host I/O:

- `VGA` passes the framebuffer bytes, width and height to its `presenter`
  when the guest sets the sync register to 1.
- `Audio` passes an `AudioSpec` to its `open_audio` callback when the guest
  writes the samples register.

## What it does not do

- There is no command-line program and no interactive debugger. You drive
  the machine from Python through `Executor.run`.
- No window is opened and no sound is played. Display and audio reach the
  host only through the callbacks above.
- Host input events must be posted to `DeviceHub.post_event` by the caller.
- There is no block storage device. No disk or card image can be attached
  to a guest.