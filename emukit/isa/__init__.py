"""Guest instruction sets (RISC-V 32, LoongArch32 reduced, MIPS32) and their CPU state."""