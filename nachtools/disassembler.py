"""Disassembly of MIPS instructions and of the text segment of COFF executables."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from typing import Optional

from nachtools.coff import CoffFile, CoffFormatError, FileHeader, MIPSELMAGIC
from nachtools.instructions import (
    NOP,
    BcondOp,
    Opcode,
    SpecialOp,
    immed,
    normal_op_name,
    off16,
    off26,
    rd,
    rs,
    rt,
    shamt,
    special_op_name,
    top4,
)

MEMSIZE = 1 << 24
MEMOFFSET = 0x10000000
_MASK = 0xFFFFFFFF

REGISTER_NAMES = (
    "0", "r1", "r2", "r3", "r4", "r5", "r6", "r7", "r8", "r9",
    "r10", "r11", "r12", "r13", "r14", "r15", "r16", "r17", "r18", "r19",
    "r20", "r21", "r22", "r23", "r24", "r25", "r26", "r27", "gp", "sp",
    "r30", "r31",
)

_LOADED_SECTIONS = (".text", ".rdata", ".data", ".sdata", ".sbss", ".bss")

_SHIFT_IMMEDIATE = {SpecialOp.SLL, SpecialOp.SRL, SpecialOp.SRA}
_SHIFT_VARIABLE = {SpecialOp.SLLV, SpecialOp.SRLV, SpecialOp.SRAV}
_RS_ONLY = {SpecialOp.JR, SpecialOp.JALR, SpecialOp.MFLO, SpecialOp.MTLO}
_RD_ONLY = {SpecialOp.MFHI, SpecialOp.MTHI}
_RS_RT = {SpecialOp.MULT, SpecialOp.MULTU, SpecialOp.DIV, SpecialOp.DIVU}
_THREE_REGISTER = {
    SpecialOp.ADD, SpecialOp.ADDU, SpecialOp.SUB, SpecialOp.SUBU,
    SpecialOp.AND, SpecialOp.OR, SpecialOp.XOR, SpecialOp.NOR,
    SpecialOp.SLT, SpecialOp.SLTU,
}
_BCOND_NAMES = {
    BcondOp.BLTZ: "bltz",
    BcondOp.BGEZ: "bgez",
    BcondOp.BLTZAL: "bltzal",
    BcondOp.BGEZAL: "bgezal",
}
_IMMEDIATE_ARITH = {
    Opcode.ADDI, Opcode.ADDIU, Opcode.SLTI, Opcode.SLTIU,
    Opcode.ANDI, Opcode.ORI, Opcode.XORI,
}
_LOAD_STORE = {
    Opcode.LB, Opcode.LH, Opcode.LWL, Opcode.LW, Opcode.LBU, Opcode.LHU,
    Opcode.LWR, Opcode.SB, Opcode.SH, Opcode.SWL, Opcode.SW, Opcode.SWR,
    Opcode.LWC0, Opcode.LWC1, Opcode.LWC2, Opcode.LWC3,
    Opcode.SWC0, Opcode.SWC1, Opcode.SWC2, Opcode.SWC3,
}


def _reg(number: int) -> str:
    return REGISTER_NAMES[number]


def _hex8(value: int) -> str:
    return f"{value & _MASK:08x}"


def _hex(value: int) -> str:
    return f"0x{value & _MASK:x}"


def _special(word: int) -> str:
    funct = word & 0x3F
    if funct in _SHIFT_IMMEDIATE:
        operands = f"{_reg(rd(word))},{_reg(rt(word))},0x{shamt(word):x}"
    elif funct in _SHIFT_VARIABLE:
        operands = f"{_reg(rd(word))},{_reg(rt(word))},{_reg(rs(word))}"
    elif funct in _RS_ONLY:
        operands = _reg(rs(word))
    elif funct in _RD_ONLY:
        operands = _reg(rd(word))
    elif funct in _RS_RT:
        operands = f"{_reg(rs(word))},{_reg(rt(word))}"
    elif funct in _THREE_REGISTER:
        operands = f"{_reg(rd(word))},{_reg(rs(word))},{_reg(rt(word))}"
    else:
        operands = ""
    return f"{special_op_name(funct)}\t{operands}"


def _bcond(word: int, pc: int) -> str:
    name = _BCOND_NAMES.get(rt(word), "BCOND")
    return f"{name}\t{_reg(rs(word))},{_hex8(off16(word) + pc + 4)}"


def _normal(opcode: int, word: int, pc: int) -> str:
    if opcode in (Opcode.J, Opcode.JAL):
        operands = _hex8(top4(pc) | off26(word))
    elif opcode in (Opcode.BEQ, Opcode.BNE):
        operands = (
            f"{_reg(rt(word))},{_reg(rs(word))},{_hex8(off16(word) + pc + 4)}"
        )
    elif opcode in _IMMEDIATE_ARITH:
        operands = f"{_reg(rt(word))},{_reg(rs(word))},{_hex(immed(word))}"
    elif opcode == Opcode.LUI:
        operands = f"{_reg(rt(word))},{_hex(immed(word))}"
    elif opcode in _LOAD_STORE:
        operands = f"{_reg(rt(word))},{_hex(immed(word))}({_reg(rs(word))})"
    else:
        operands = ""
    return f"{normal_op_name(opcode)}\t{operands}"


def format_instruction(word: int, pc: int, long: bool = True) -> str:
    """Render one instruction; ``long`` prefixes the address and the raw word."""
    word &= _MASK
    prefix = f"{pc & _MASK:08x}: {word:08x}  " if long else ""
    opcode = word >> 26
    if word == NOP:
        body = "nop"
    elif opcode == Opcode.SPECIAL:
        body = _special(word)
    elif opcode == Opcode.BCOND:
        body = _bcond(word, pc)
    else:
        body = _normal(opcode, word, pc)
    return f"{prefix}\t{body}"


def disassemble(code: bytes, base: int = MEMOFFSET) -> Iterator[str]:
    """Yield one line per little-endian word of ``code``, starting at ``base``."""
    padded = bytes(code) + b"\0" * (-len(code) % 4)
    for offset in range(0, len(padded), 4):
        word = int.from_bytes(padded[offset:offset + 4], "little")
        yield format_instruction(word, base + offset)


def _load_image(coff: CoffFile) -> tuple[dict[int, int], int]:
    """Place the sections in a sparse memory image; return it and the text size."""
    image: dict[int, int] = {}
    text_size = 0
    for name in _LOADED_SECTIONS:
        section = coff.section(name)
        if section is None:
            print(f"{name[1:]} section header missing")
            continue
        if name == ".text":
            text_size = section.size
        if section.scnptr == 0:
            continue
        if section.size and section.vaddr + section.size - 1 - MEMOFFSET >= MEMSIZE:
            raise MemoryError("MEMSIZE too small. Fix and recompile.")
        for index, byte in enumerate(coff.section_data(section)):
            image[section.vaddr + index] = byte
    return image, text_size


def main(argv: Optional[list[str]] = None) -> int:
    """Disassemble the text segment of a COFF file (``a.out`` by default)."""
    args = sys.argv[1:] if argv is None else list(argv)
    while args and args[0].startswith("-"):
        args.pop(0)
    filename = args[0] if args else "a.out"
    try:
        with open(filename, "rb") as handle:
            data = handle.read()
    except OSError:
        print(f"disasm: Could not open '{filename}'", file=sys.stderr)
        return 0
    try:
        if FileHeader.from_bytes(data).magic != MIPSELMAGIC:
            print("big-endian object file (little-endian interp)", file=sys.stderr)
            return 0
        coff = CoffFile.from_bytes(data)
        image, text_size = _load_image(coff)
    except CoffFormatError:
        print(f"disasm: Load read error on {filename}", file=sys.stderr)
        return 0
    except MemoryError as error:
        print(error)
        return 1
    code = bytes(image.get(MEMOFFSET + index, 0) for index in range(text_size))
    for line in disassemble(code, MEMOFFSET):
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())