[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "emukit"
version = "0.1.0"
description = "A small full-system emulator toolkit: guest CPUs, physical memory, memory-mapped devices and an execution loop"
requires-python = ">=3.10"
dependencies = []
keywords = ["emulator", "riscv", "mips", "loongarch", "mmio", "instruction-set", "simulator"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["emukit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
