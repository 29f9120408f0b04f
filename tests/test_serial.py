import io

import pytest

from emukit.devices.serial import Serial
from emukit.iomap import DeviceError, MMIOBus, PortIOBus

MMIO_ADDR = 0xA00003F8


@pytest.fixture
def setup():
    stream = io.StringIO()
    serial = Serial(stream)
    bus = MMIOBus(0x80000000, 0x87FFFFFF)
    serial.attach(bus, MMIO_ADDR)
    return stream, bus


def test_write_prints_character(setup):
    stream, bus = setup
    for ch in "hi\n":
        bus.write(MMIO_ADDR, 1, ord(ch))
    assert stream.getvalue() == "hi\n"


def test_read_is_rejected(setup):
    _, bus = setup
    with pytest.raises(DeviceError):
        bus.read(MMIO_ADDR, 1)


def test_wide_write_is_rejected(setup):
    stream, bus = setup
    with pytest.raises(DeviceError):
        bus.write(MMIO_ADDR, 2, 0x4141)
    assert stream.getvalue() == ""


def test_other_offset_is_rejected(setup):
    _, bus = setup
    with pytest.raises(DeviceError):
        bus.write(MMIO_ADDR + 1, 1, 0x41)


def test_port_io_attachment():
    stream = io.StringIO()
    bus = PortIOBus()
    iomap = Serial(stream).attach(bus, 0x3F8)
    bus.write(0x3F8, 1, ord("Z"))
    assert stream.getvalue() == "Z"
    assert iomap.high - iomap.low == 7