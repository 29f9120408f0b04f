"""VGA controller: a size register, a sync register and a framebuffer."""

from __future__ import annotations

from typing import Callable, Optional

from ..iomap import IOMap

Presenter = Callable[[bytes, int, int], None]


class VGA:
    """Framebuffer of 32-bit pixels, shown when the guest sets the sync register."""

    def __init__(self, width: int = 400, height: int = 300,
                 presenter: Optional[Presenter] = None) -> None:
        self.width = width
        self.height = height
        self.presenter = presenter
        self.ctl = bytearray(8)
        self.ctl[0:4] = ((width << 16) | height).to_bytes(4, "little")
        self.vmem = bytearray(self.screen_size)

    @property
    def screen_size(self) -> int:
        return self.width * self.height * 4

    def attach(self, bus, ctl_addr: int, fb_addr: int) -> IOMap:
        """Map the control registers and the framebuffer onto ``bus``."""
        iomap = bus.add_map("vgactl", ctl_addr, self.ctl, None)
        bus.add_map("vmem", fb_addr, self.vmem, None)
        return iomap

    def update_screen(self) -> None:
        """Present the framebuffer if the sync register is 1, then clear it."""
        if int.from_bytes(self.ctl[4:8], "little") == 1:
            if self.presenter is not None:
                self.presenter(bytes(self.vmem), self.width, self.height)
            self.ctl[4:8] = bytes(4)