"""MIPS instruction field decoding, opcode numbers and mnemonic tables."""

from __future__ import annotations

from enum import IntEnum

NOP = 0o000


class Opcode(IntEnum):
    """Primary opcodes, taken from bits 26..31 of an instruction."""

    SPECIAL = 0o000
    BCOND = 0o001
    J = 0o002
    JAL = 0o003
    BEQ = 0o004
    BNE = 0o005
    BLEZ = 0o006
    BGTZ = 0o007
    ADDI = 0o010
    ADDIU = 0o011
    SLTI = 0o012
    SLTIU = 0o013
    ANDI = 0o014
    ORI = 0o015
    XORI = 0o016
    LUI = 0o017
    COP0 = 0o020
    COP1 = 0o021
    COP2 = 0o022
    COP3 = 0o023
    LB = 0o040
    LH = 0o041
    LWL = 0o042
    LW = 0o043
    LBU = 0o044
    LHU = 0o045
    LWR = 0o046
    SB = 0o050
    SH = 0o051
    SWL = 0o052
    SW = 0o053
    SWR = 0o056
    LWC0 = 0o060
    LWC1 = 0o061
    LWC2 = 0o062
    LWC3 = 0o063
    SWC0 = 0o070
    SWC1 = 0o071
    SWC2 = 0o072
    SWC3 = 0o073


class SpecialOp(IntEnum):
    """Function codes of SPECIAL instructions, taken from bits 0..5."""

    SLL = 0o000
    SRL = 0o002
    SRA = 0o003
    SLLV = 0o004
    SRLV = 0o006
    SRAV = 0o007
    JR = 0o010
    JALR = 0o011
    SYSCALL = 0o014
    BREAK = 0o015
    MFHI = 0o020
    MTHI = 0o021
    MFLO = 0o022
    MTLO = 0o023
    MULT = 0o030
    MULTU = 0o031
    DIV = 0o032
    DIVU = 0o033
    ADD = 0o040
    ADDU = 0o041
    SUB = 0o042
    SUBU = 0o043
    AND = 0o044
    OR = 0o045
    XOR = 0o046
    NOR = 0o047
    SLT = 0o052
    SLTU = 0o053


class BcondOp(IntEnum):
    """Branch conditions of BCOND instructions, encoded in the rt field."""

    BLTZ = 0o000
    BGEZ = 0o001
    BLTZAL = 0o020
    BGEZAL = 0o021


def rd(word: int) -> int:
    return (word >> 11) & 0x1F


def rt(word: int) -> int:
    return (word >> 16) & 0x1F


def rs(word: int) -> int:
    return (word >> 21) & 0x1F


def shamt(word: int) -> int:
    return (word >> 6) & 0x1F


def immed(word: int) -> int:
    """Return the low 16 bits of ``word`` sign-extended."""
    if word & 0x8000:
        return word | -0x8000
    return word & 0x7FFF


def off26(word: int) -> int:
    """Return the 26-bit jump target field as a byte offset."""
    return (word & ((1 << 26) - 1)) << 2


def top4(word: int) -> int:
    """Return the top four bits of a 32-bit address, in place."""
    return word & 0xF0000000


def off16(word: int) -> int:
    """Return the signed 16-bit branch offset as a byte offset."""
    return immed(word) << 2


def extend(value: int, hibitmask: int) -> int:
    """Sign-extend ``value`` whose sign bit is ``hibitmask``."""
    if value & hibitmask:
        return value | -hibitmask
    return value


def _name_table(enum_type: type[IntEnum]) -> tuple[str, ...]:
    known = {member.value: member.name.lower() for member in enum_type}
    return tuple(known.get(code, f"{code:03o}") for code in range(64))


_NORMAL_NAMES = _name_table(Opcode)
_SPECIAL_NAMES = _name_table(SpecialOp)


def _lookup(table: tuple[str, ...], code: int, kind: str) -> str:
    if not 0 <= code < len(table):
        raise ValueError(f"{kind} {code} out of range 0..{len(table) - 1}")
    return table[code]


def normal_op_name(opcode: int) -> str:
    """Return the mnemonic of a primary opcode; unknown codes read as octal."""
    return _lookup(_NORMAL_NAMES, opcode, "opcode")


def special_op_name(funct: int) -> str:
    """Return the mnemonic of a SPECIAL function code; unknown codes read as octal."""
    return _lookup(_SPECIAL_NAMES, funct, "function code")