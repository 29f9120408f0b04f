import pytest

from emukit.devices.vga import VGA
from emukit.iomap import DeviceError, MMIOBus

CTL = 0xA0000100
FB = 0xA1000000


def make(presenter=None, width=400, height=300):
    vga = VGA(width, height, presenter)
    bus = MMIOBus(0x80000000, 0x87FFFFFF)
    vga.attach(bus, CTL, FB)
    return vga, bus


def test_size_register_packs_width_and_height():
    _, bus = make(width=800, height=600)
    value = bus.read(CTL, 4)
    assert value >> 16 == 800
    assert value & 0xFFFF == 600


def test_framebuffer_covers_whole_screen():
    vga, bus = make(width=4, height=2)
    bus.write(FB + 4 * 8 - 4, 4, 0x00FF00FF)
    assert bus.read(FB + 4 * 8 - 4, 4) == 0x00FF00FF
    with pytest.raises(DeviceError):
        bus.read(FB + 4 * 8, 4)


def test_sync_presents_and_clears():
    frames = []
    vga, bus = make(lambda f, w, h: frames.append((f, w, h)), width=2, height=1)
    bus.write(FB, 4, 0x11223344)
    bus.write(CTL + 4, 4, 1)
    vga.update_screen()
    assert len(frames) == 1
    frame, w, h = frames[0]
    assert (w, h) == (2, 1)
    assert frame[:4] == (0x11223344).to_bytes(4, "little")
    assert bus.read(CTL + 4, 4) == 0


def test_no_sync_no_present():
    frames = []
    vga, _ = make(lambda f, w, h: frames.append(f))
    vga.update_screen()
    assert frames == []


def test_sync_other_value_is_ignored():
    frames = []
    vga, bus = make(lambda f, w, h: frames.append(f))
    bus.write(CTL + 4, 4, 2)
    vga.update_screen()
    assert frames == []
    assert bus.read(CTL + 4, 4) == 2