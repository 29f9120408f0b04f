"""Emulator toolkit: guest CPUs, physical memory, memory-mapped devices and an execution loop."""

__version__ = "0.1.0"