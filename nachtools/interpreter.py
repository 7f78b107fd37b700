"""An interpreter for little-endian MIPS user programs loaded from COFF files."""

from __future__ import annotations

import mmap
import os
import sys
from collections.abc import Callable, Iterable
from typing import BinaryIO, Optional, TextIO, Union

from nachtools.coff import CoffFile, CoffFormatError, FileHeader, MIPSELMAGIC
from nachtools.disassembler import MEMOFFSET, MEMSIZE, format_instruction
from nachtools.instructions import (
    BcondOp,
    Opcode,
    SpecialOp,
    immed,
    rd,
    rs,
    rt,
    shamt,
)

_MASK = 0xFFFFFFFF

SYS_EXIT = 1
SYS_READ = 3
SYS_WRITE = 4
SYS_OPEN = 5
SYS_CLOSE = 6
SYS_SBREAK = 17
SYS_LSEEK = 19
SYS_IOCTL = 54
SYS_FSTAT = 62
SYS_GETPAGESIZE = 64

_LOADED_SECTIONS = (".text", ".rdata", ".data", ".sdata", ".sbss", ".bss")


class MachineError(RuntimeError):
    """Raised when the simulated program does something the machine cannot do."""


class ProgramExit(Exception):
    """Raised when the simulated program asks to exit."""

    def __init__(self, status: int = 0) -> None:
        super().__init__(f"program exited with status {status}")
        self.status = status


def _s32(value: int) -> int:
    value &= _MASK
    return value - (1 << 32) if value & 0x80000000 else value


def _u32(value: int) -> int:
    return value & _MASK


class Memory:
    """Byte-addressed little-endian memory covering ``offset`` .. ``offset + size``."""

    def __init__(self, size: int = MEMSIZE, offset: int = MEMOFFSET) -> None:
        if size <= 0:
            raise ValueError("memory size must be positive")
        self.size = size
        self.offset = offset
        self._bytes = bytearray(size)

    def _index(self, address: int, length: int) -> int:
        index = _u32(address) - self.offset
        if index < 0 or index + length > self.size:
            raise MachineError(f"address 0x{_u32(address):08x} outside memory")
        return index

    def load(self, address: int, data: bytes) -> None:
        """Copy ``data`` into memory starting at ``address``."""
        index = self._index(address, len(data))
        self._bytes[index:index + len(data)] = data

    def _read_int(self, address: int, width: int, signed: bool) -> int:
        index = self._index(address, width)
        return int.from_bytes(self._bytes[index:index + width], "little", signed=signed)

    def _write_int(self, address: int, width: int, value: int) -> None:
        index = self._index(address, width)
        masked = value & ((1 << (8 * width)) - 1)
        self._bytes[index:index + width] = masked.to_bytes(width, "little")

    def fetch_word(self, address: int) -> int:
        return self._read_int(address, 4, True)

    def fetch_half(self, address: int) -> int:
        return self._read_int(address, 2, True)

    def fetch_half_unsigned(self, address: int) -> int:
        return self._read_int(address, 2, False)

    def fetch_byte(self, address: int) -> int:
        return self._read_int(address, 1, True)

    def fetch_byte_unsigned(self, address: int) -> int:
        return self._read_int(address, 1, False)

    def store_word(self, address: int, value: int) -> None:
        self._write_int(address, 4, value)

    def store_half(self, address: int, value: int) -> None:
        self._write_int(address, 2, value)

    def store_byte(self, address: int, value: int) -> None:
        self._write_int(address, 1, value)

    def read_bytes(self, address: int, length: int) -> bytes:
        if length < 0:
            raise MachineError("negative length")
        index = self._index(address, length)
        return bytes(self._bytes[index:index + length])

    def read_cstring(self, address: int) -> bytes:
        """Return the NUL-terminated string at ``address``, without the NUL."""
        index = self._index(address, 1)
        end = self._bytes.find(0, index)
        if end < 0:
            raise MachineError(f"unterminated string at 0x{_u32(address):08x}")
        return bytes(self._bytes[index:end])


_SHIFTS: dict[int, Callable[[int, int], int]] = {
    SpecialOp.SLL: lambda value, amount: value << amount,
    SpecialOp.SRL: lambda value, amount: _u32(value) >> amount,
    SpecialOp.SRA: lambda value, amount: value >> amount,
}
_VARIABLE_SHIFTS = {
    SpecialOp.SLLV: SpecialOp.SLL,
    SpecialOp.SRLV: SpecialOp.SRL,
    SpecialOp.SRAV: SpecialOp.SRA,
}
_ALU: dict[int, Callable[[int, int], int]] = {
    SpecialOp.ADD: lambda a, b: a + b,
    SpecialOp.ADDU: lambda a, b: a + b,
    SpecialOp.SUB: lambda a, b: a - b,
    SpecialOp.SUBU: lambda a, b: a - b,
    SpecialOp.AND: lambda a, b: a & b,
    SpecialOp.OR: lambda a, b: a | b,
    SpecialOp.XOR: lambda a, b: a ^ b,
    SpecialOp.NOR: lambda a, b: ~(a | b),
    SpecialOp.SLT: lambda a, b: int(a < b),
    SpecialOp.SLTU: lambda a, b: int(_u32(a) < _u32(b)),
}
_IMMEDIATE: dict[int, Callable[[int, int], int]] = {
    Opcode.ADDI: lambda a, imm: a + imm,
    Opcode.ADDIU: lambda a, imm: a + imm,
    Opcode.SLTI: lambda a, imm: int(a < imm),
    Opcode.SLTIU: lambda a, imm: int(_u32(a) < _u32(imm)),
    Opcode.ANDI: lambda a, imm: a & imm,
    Opcode.ORI: lambda a, imm: a | imm,
    Opcode.XORI: lambda a, imm: a ^ imm,
}
_BRANCHES: dict[int, Callable[[int, int], bool]] = {
    Opcode.BEQ: lambda a, b: a == b,
    Opcode.BNE: lambda a, b: a != b,
    Opcode.BLEZ: lambda a, _: a <= 0,
    Opcode.BGTZ: lambda a, _: a > 0,
}
_LOADS: dict[int, Callable[[Memory, int], int]] = {
    Opcode.LB: Memory.fetch_byte,
    Opcode.LH: Memory.fetch_half,
    Opcode.LW: Memory.fetch_word,
    Opcode.LBU: Memory.fetch_byte_unsigned,
    Opcode.LHU: Memory.fetch_half_unsigned,
}
_STORES: dict[int, Callable[[Memory, int, int], None]] = {
    Opcode.SB: Memory.store_byte,
    Opcode.SH: Memory.store_half,
    Opcode.SW: Memory.store_word,
}
_COPROCESSOR = {
    Opcode.LWC0, Opcode.LWC1, Opcode.LWC2, Opcode.LWC3,
    Opcode.SWC0, Opcode.SWC1, Opcode.SWC2, Opcode.SWC3,
    Opcode.COP0, Opcode.COP1, Opcode.COP2, Opcode.COP3,
}


class Machine:
    """The register state of the simulated processor and its system calls."""

    def __init__(
        self,
        memory: Optional[Memory] = None,
        output: Optional[TextIO] = None,
        trace: bool = False,
        trap_trace: bool = False,
        reg_trace: bool = False,
    ) -> None:
        self.memory = memory if memory is not None else Memory()
        self._output = output
        self.trace = trace
        self.trap_trace = trap_trace
        self.reg_trace = reg_trace
        self.regs = [0] * 32
        self.hi = 0
        self.lo = 0
        self.pc = self.memory.offset
        self.npc = self.pc + 4
        self.icount = 0
        self.files: dict[int, BinaryIO] = {}

    def _write(self, text: str) -> None:
        (self._output if self._output is not None else sys.stdout).write(text)

    def setup_arguments(self, argv: Iterable[Union[str, bytes]]) -> None:
        """Place argc and the argument strings at the top of the stack."""
        args = [os.fsencode(arg) if isinstance(arg, str) else bytes(arg) for arg in argv]
        sp = self.memory.offset + self.memory.size - 1024
        self.regs[29] = _s32(sp)
        self.memory.store_word(sp, len(args))
        pointer = sp + 4
        string = pointer + 32
        for raw in args:
            self.memory.load(string, raw + b"\0")
            self.memory.store_word(pointer, string)
            pointer += 4
            string += len(raw) + 1

    def step(self) -> None:
        """Execute one instruction, honouring the branch delay slot."""
        xpc = self.pc
        self.pc = self.npc
        self.npc = _s32(self.pc + 4)
        instr = self.memory.fetch_word(xpc)
        self.icount += 1
        self.regs[0] = 0
        if instr != 0:
            self._execute(instr & _MASK, xpc)
        if self.trace:
            self._write(format_instruction(instr, xpc) + "\n")
            if self.reg_trace:
                self.dump_registers()

    def _branch_target(self, word: int, xpc: int) -> int:
        return _s32(xpc + 4 + (immed(word) << 2))

    def _execute(self, word: int, xpc: int) -> None:
        r = self.regs
        op = word >> 26
        if op == Opcode.SPECIAL:
            self._special(word, xpc)
        elif op == Opcode.BCOND:
            self._bcond(word, xpc)
        elif op in (Opcode.J, Opcode.JAL):
            if op == Opcode.JAL:
                r[31] = _s32(xpc + 8)
            self.npc = _s32((_u32(xpc) & 0xF0000000) | ((word & 0x03FFFFFF) << 2))
        elif op in _BRANCHES:
            if _BRANCHES[op](r[rs(word)], r[rt(word)]):
                self.npc = self._branch_target(word, xpc)
        elif op in _IMMEDIATE:
            r[rt(word)] = _s32(_IMMEDIATE[op](r[rs(word)], immed(word)))
        elif op == Opcode.LUI:
            r[rt(word)] = _s32(word << 16)
        elif op in _LOADS:
            address = _s32(r[rs(word)] + immed(word))
            r[rt(word)] = _s32(_LOADS[op](self.memory, address))
        elif op == Opcode.LWL:
            address = _s32(r[rs(word)] + immed(word))
            aligned = self.memory.fetch_word(address & 0xFFFFFFFC)
            r[rt(word)] = _s32(r[rt(word)] | (aligned << (8 * (address & 3))))
        elif op == Opcode.LWR:
            address = _s32(r[rs(word)] + immed(word))
            kept = 0 if address & 3 == 0 else r[rt(word)] & (-1 << (8 * (address & 3)))
            aligned = self.memory.fetch_word(address & 0xFFFFFFFC)
            r[rt(word)] = _s32(kept | (aligned >> (8 * ((-address) & 3))))
        elif op in _STORES:
            address = _s32(r[rs(word)] + immed(word))
            _STORES[op](self.memory, address, r[rt(word)])
        elif op in (Opcode.SWL, Opcode.SWR):
            raise MachineError(f"sorry, no {Opcode(op).name} yet.")
        elif op in _COPROCESSOR:
            raise MachineError("Sorry, no coprocessors.")
        else:
            raise MachineError("Unimplemented Instruction")

    def _special(self, word: int, xpc: int) -> None:
        r = self.regs
        funct = word & 0x3F
        s, t, d = rs(word), rt(word), rd(word)
        if funct in _SHIFTS:
            r[d] = _s32(_SHIFTS[funct](r[t], shamt(word)))
        elif funct in _VARIABLE_SHIFTS:
            r[d] = _s32(_SHIFTS[_VARIABLE_SHIFTS[funct]](r[t], r[s] & 31))
        elif funct == SpecialOp.JR:
            self.npc = r[s]
        elif funct == SpecialOp.JALR:
            self.npc = r[s]
            r[d] = _s32(xpc + 8)
        elif funct == SpecialOp.SYSCALL:
            self.system_trap()
        elif funct == SpecialOp.BREAK:
            self._system_break()
        elif funct == SpecialOp.MFHI:
            r[d] = self.hi
        elif funct == SpecialOp.MTHI:
            self.hi = r[s]
        elif funct == SpecialOp.MFLO:
            r[d] = self.lo
        elif funct == SpecialOp.MTLO:
            self.lo = r[s]
        elif funct in (SpecialOp.MULT, SpecialOp.MULTU):
            self._multiply(r[s], r[t], funct == SpecialOp.MULT)
        elif funct in (SpecialOp.DIV, SpecialOp.DIVU):
            self._divide(r[s], r[t], funct == SpecialOp.DIV)
        elif funct in _ALU:
            r[d] = _s32(_ALU[funct](r[s], r[t]))
        else:
            raise MachineError("Unimplemented Instruction")

    def _multiply(self, t1: int, t2: int, signed: bool) -> None:
        negative = False
        if signed:
            if t1 < 0:
                t1, negative = _s32(-t1), not negative
            if t2 < 0:
                t2, negative = _s32(-t2), not negative
        lo = _s32(t1 * t2)
        t1l, t1h = t1 & 0xFFFF, (t1 >> 16) & 0xFFFF
        t2l, t2h = t2 & 0xFFFF, (t2 >> 16) & 0xFFFF
        hi = _s32(t1h * t2h + (_s32(t1h * t2l) >> 16) + (_s32(t2h * t1l) >> 16))
        if negative:
            lo, hi = _s32(~lo), _s32(~hi)
            lo = _s32(lo + 1)
            if lo == 0:
                hi = _s32(hi + 1)
        self.lo, self.hi = lo, hi

    def _divide(self, a: int, b: int, signed: bool) -> None:
        if not signed:
            a, b = _u32(a), _u32(b)
        if b == 0:
            raise MachineError("Integer division by zero")
        quotient = abs(a) // abs(b)
        if (a < 0) != (b < 0):
            quotient = -quotient
        self.lo = _s32(quotient)
        self.hi = _s32(a - quotient * b)

    def _bcond(self, word: int, xpc: int) -> None:
        r = self.regs
        cond = rt(word)
        if cond in (BcondOp.BLTZAL, BcondOp.BGEZAL):
            r[31] = _s32(xpc + 8)
        if cond in (BcondOp.BLTZ, BcondOp.BLTZAL):
            taken = r[rs(word)] < 0
        elif cond in (BcondOp.BGEZ, BcondOp.BGEZAL):
            taken = r[rs(word)] >= 0
        else:
            raise MachineError("Unimplemented Instruction")
        if taken:
            self.npc = self._branch_target(word, xpc)

    def _stream(self, fd: int) -> Optional[BinaryIO]:
        if fd in self.files:
            return self.files[fd]
        std = {0: sys.stdin, 1: sys.stdout, 2: sys.stderr}.get(fd)
        if std is None:
            return None
        return getattr(std, "buffer", std)

    def _flush(self) -> None:
        for fd in (1, 2):
            stream = self._stream(fd)
            try:
                if stream is not None:
                    stream.flush()
            except (OSError, ValueError):
                pass

    def _sys_read(self, fd: int, address: int, count: int) -> int:
        if count < 0:
            return -1
        stream = self._stream(fd)
        try:
            data = stream.read(count) if stream is not None else os.read(fd, count)
        except (OSError, ValueError, TypeError):
            return -1
        data = data or b""
        self.memory.load(address, data)
        return len(data)

    def _sys_write(self, fd: int, address: int, count: int) -> int:
        if count < 0:
            return -1
        data = self.memory.read_bytes(address, count)
        stream = self._stream(fd)
        try:
            if stream is None:
                return os.write(fd, data)
            stream.write(data)
            stream.flush()
        except (OSError, ValueError, TypeError):
            return -1
        return len(data)

    def _sys_open(self, address: int, flags: int, mode: int) -> int:
        path = os.fsdecode(self.memory.read_cstring(address))
        try:
            return os.open(path, flags, mode)
        except (OSError, ValueError):
            return -1

    def _sys_lseek(self, fd: int, offset: int, whence: int) -> int:
        stream = self._stream(fd)
        try:
            if stream is None:
                return _s32(os.lseek(fd, offset, whence))
            return _s32(stream.seek(offset, whence))
        except (OSError, ValueError):
            return -1

    @staticmethod
    def _sys_fstat(fd: int) -> int:
        try:
            os.fstat(fd)
        except (OSError, ValueError):
            return -1
        return 0

    def _system_break(self) -> None:
        if self.trap_trace:
            self._write("**breakpoint ")
        self.system_trap()

    def system_trap(self) -> None:
        """Carry out the system call whose number is in r2, arguments in r4..r6."""
        r = self.regs
        if self.trap_trace:
            self._write(f"**System call {r[2]}\n")
            self.dump_registers()
        number, a0, a1, a2 = r[2], r[4], r[5], r[6]
        if number == SYS_EXIT:
            self._flush()
            raise ProgramExit(0)
        if number == SYS_READ:
            r[1] = self._sys_read(a0, a1, a2)
        elif number == SYS_WRITE:
            r[1] = self._sys_write(a0, a1, a2)
        elif number == SYS_OPEN:
            r[1] = self._sys_open(a0, a1, a2)
        elif number == SYS_CLOSE:
            r[1] = 0
        elif number == SYS_SBREAK:
            quotient = -(-a0 // 8192) if a0 < 0 else a0 // 8192
            r[1] = _s32((quotient + 1) * 8192)
        elif number == SYS_LSEEK:
            r[1] = self._sys_lseek(a0, a1, a2)
        elif number == SYS_IOCTL:
            r[1] = 0
        elif number == SYS_FSTAT:
            r[1] = self._sys_fstat(a1)
        elif number == SYS_GETPAGESIZE:
            r[1] = mmap.PAGESIZE
        else:
            if not self.trap_trace:
                self.dump_registers()
            raise MachineError(f"Unknown System call {number}")
        if self.trap_trace:
            self._write("**Afterwards:\n")
            self.dump_registers()

    def dump_registers(self) -> str:
        """Write the 32 registers as four rows of eight, and return that text."""
        rows = []
        for start in range(0, 32, 8):
            values = " ".join(f"{_u32(value):08x}" for value in self.regs[start:start + 8])
            rows.append(f"{start:2d}: {values}\n")
        text = "".join(rows)
        self._write(text)
        return text

    def run(
        self,
        start_pc: Optional[int] = None,
        argv: Optional[Iterable[Union[str, bytes]]] = None,
        max_steps: Optional[int] = None,
    ) -> int:
        """Run from ``start_pc`` until the program exits; return its exit status."""
        self.pc = self.memory.offset if start_pc is None else start_pc
        self.npc = self.pc + 4
        self.setup_arguments(argv if argv is not None else [])
        steps = 0
        try:
            while max_steps is None or steps < max_steps:
                self.step()
                steps += 1
        except ProgramExit as done:
            return done.status
        raise MachineError(f"step limit of {max_steps} instructions reached")


def load_program(
    memory: Memory,
    coff: CoffFile,
    log: Optional[Callable[[str], object]] = None,
) -> None:
    """Copy the loadable sections of ``coff`` into ``memory`` at their addresses."""
    emit = log if log is not None else (lambda _: None)
    for name in _LOADED_SECTIONS:
        section = coff.section(name)
        if section is None:
            emit(f"{name[1:]} section header missing")
            continue
        if section.scnptr == 0:
            continue
        if section.vaddr + section.size - memory.offset >= memory.size:
            raise MachineError("MEMSIZE too small. Fix and recompile.")
        memory.load(section.vaddr, coff.section_data(section))


def ilog2(value: int) -> int:
    """Return the number of bits needed for ``value`` taken as unsigned 32-bit."""
    return _u32(value).bit_length()


def main(argv: Optional[list[str]] = None) -> int:
    """Command line entry: interpreter [-t] [-T] [-r] [-m n a l p] [file [args...]]."""
    args = list(sys.argv[1:] if argv is None else argv)
    trace = trap_trace = reg_trace = False
    while args and args[0].startswith("-"):
        flag = args.pop(0)
        for letter in flag[1:]:
            if letter == "t":
                trace = True
            elif letter == "T":
                trap_trace = True
            elif letter == "r":
                reg_trace = True
            elif letter == "m":
                # Cache geometry: rows, associativity, line size, policy. Unused.
                del args[:4]
    filename = args[0] if args else "a.out"
    try:
        with open(filename, "rb") as handle:
            data = handle.read()
    except OSError:
        print(f"interpreter: Could not open '{filename}'", file=sys.stderr)
        return 0
    memory = Memory()
    try:
        if FileHeader.from_bytes(data).magic != MIPSELMAGIC:
            print("big-endian object file (little-endian interp)", file=sys.stderr)
            return 0
        coff = CoffFile.from_bytes(data)
        load_program(memory, coff, log=print)
    except CoffFormatError:
        print(f"interpreter: Load read error on {filename}", file=sys.stderr)
        return 0
    except MachineError as error:
        print(error)
        return 1
    machine = Machine(memory, trace=trace, trap_trace=trap_trace, reg_trace=reg_trace)
    program_args = args if args else ["a.out"]
    try:
        return machine.run(memory.offset, program_args)
    except MachineError as error:
        sys.stdout.flush()
        print(error)
        return 2


if __name__ == "__main__":
    sys.exit(main())