import io

import pytest

from nachtools.coff import CoffFile, FileHeader, OptionalHeader, SectionHeader
from nachtools.instructions import Opcode, SpecialOp
from nachtools.interpreter import (
    Machine,
    MachineError,
    Memory,
    ilog2,
    load_program,
    main,
)

BASE = 0x10000000
SIZE = 0x10000


def r_type(funct, rs=0, rt=0, rd=0, sh=0):
    return (rs << 21) | (rt << 16) | (rd << 11) | (sh << 6) | int(funct)


def i_type(op, rs, rt, imm):
    return (int(op) << 26) | (rs << 21) | (rt << 16) | (imm & 0xFFFF)


def addiu(rt, rs, imm):
    return i_type(Opcode.ADDIU, rs, rt, imm)


def jump(op, target):
    return (int(op) << 26) | ((target >> 2) & 0x3FFFFFF)


SYSCALL = r_type(SpecialOp.SYSCALL)
EXIT = [addiu(2, 0, 1), SYSCALL]


def encode(words):
    return b"".join((w & 0xFFFFFFFF).to_bytes(4, "little") for w in words)


def make_machine(words, **kwargs):
    memory = Memory(SIZE)
    memory.load(BASE, encode(words))
    machine = Machine(memory, output=io.StringIO(), **kwargs)
    machine.files[1] = io.BytesIO()
    return machine


def execute(words, **kwargs):
    machine = make_machine(list(words) + EXIT, **kwargs)
    status = machine.run(BASE, ["prog"], max_steps=1000)
    return machine, status


def coff_bytes(words):
    code = encode(words)
    start = FileHeader.SIZE + OptionalHeader.SIZE + SectionHeader.SIZE
    text = SectionHeader(
        name=".text", paddr=BASE, vaddr=BASE, size=len(code), scnptr=start
    )
    return (
        FileHeader(nscns=1).to_bytes()
        + OptionalHeader().to_bytes()
        + text.to_bytes()
        + code
    )


def test_memory_word_is_little_endian():
    memory = Memory(SIZE)
    memory.store_word(BASE, 0x12345678)
    assert memory.read_bytes(BASE, 4) == b"\x78\x56\x34\x12"
    assert memory.fetch_word(BASE) == 0x12345678


def test_memory_signed_and_unsigned_fetches():
    memory = Memory(SIZE)
    memory.store_word(BASE, -1)
    assert memory.fetch_word(BASE) == -1
    assert memory.fetch_byte(BASE) == -1
    assert memory.fetch_byte_unsigned(BASE) == 0xFF
    assert memory.fetch_half(BASE) == -1
    assert memory.fetch_half_unsigned(BASE) == 0xFFFF


def test_memory_stores_truncate():
    memory = Memory(SIZE)
    memory.store_byte(BASE, 0x1FF)
    memory.store_half(BASE + 2, 0x12345)
    assert memory.fetch_byte_unsigned(BASE) == 0xFF
    assert memory.fetch_half_unsigned(BASE + 2) == 0x2345


def test_memory_out_of_range():
    memory = Memory(SIZE)
    with pytest.raises(MachineError):
        memory.fetch_word(BASE - 4)
    with pytest.raises(MachineError):
        memory.fetch_word(BASE + SIZE - 2)


def test_memory_read_cstring():
    memory = Memory(SIZE)
    memory.load(BASE + 8, b"hello\0world")
    assert memory.read_cstring(BASE + 8) == b"hello"


def test_add_immediate_and_register():
    machine, status = execute(
        [addiu(8, 0, 5), addiu(9, 0, -3), r_type(SpecialOp.ADDU, 8, 9, 10)]
    )
    assert status == 0
    assert machine.regs[8] == 5
    assert machine.regs[9] == -3
    assert machine.regs[10] == 5 + -3


def test_shifts():
    machine, _ = execute(
        [
            addiu(8, 0, -16),
            r_type(SpecialOp.SLL, rt=8, rd=9, sh=2),
            r_type(SpecialOp.SRL, rt=8, rd=10, sh=28),
            r_type(SpecialOp.SRA, rt=8, rd=11, sh=2),
        ]
    )
    assert machine.regs[9] == -16 * 4
    assert machine.regs[10] == 0xFFFFFFF0 >> 28
    assert machine.regs[11] == -16 // 4


def test_signed_and_unsigned_compare():
    machine, _ = execute(
        [
            addiu(8, 0, -1),
            addiu(9, 0, 1),
            r_type(SpecialOp.SLT, 8, 9, 10),
            r_type(SpecialOp.SLTU, 8, 9, 11),
        ]
    )
    assert machine.regs[10] == 1
    assert machine.regs[11] == 0


def test_lui():
    machine, _ = execute([i_type(Opcode.LUI, 0, 8, 0x1234)])
    assert machine.regs[8] == 0x1234 << 16


def test_mult_negative():
    machine, _ = execute(
        [
            addiu(8, 0, -6),
            addiu(9, 0, 7),
            r_type(SpecialOp.MULT, 8, 9),
            r_type(SpecialOp.MFLO, rd=10),
            r_type(SpecialOp.MFHI, rd=11),
        ]
    )
    assert machine.regs[10] == -6 * 7
    assert machine.regs[11] == -1


def test_div_truncates_toward_zero():
    machine, _ = execute(
        [
            addiu(8, 0, 7),
            addiu(9, 0, -2),
            r_type(SpecialOp.DIV, 8, 9),
            r_type(SpecialOp.MFLO, rd=10),
            r_type(SpecialOp.MFHI, rd=11),
        ]
    )
    assert machine.regs[10] == -3
    assert machine.regs[11] == 1
    assert machine.regs[10] * -2 + machine.regs[11] == 7


def test_division_by_zero_raises():
    machine = make_machine([addiu(8, 0, 7), r_type(SpecialOp.DIV, 8, 0)])
    with pytest.raises(MachineError):
        machine.run(BASE, [], max_steps=10)


def test_branch_executes_delay_slot():
    machine, _ = execute(
        [
            i_type(Opcode.BEQ, 0, 0, 2),
            addiu(8, 0, 1),
            addiu(9, 0, 1),
            addiu(10, 0, 1),
        ]
    )
    assert machine.regs[8] == 1
    assert machine.regs[9] == 0
    assert machine.regs[10] == 1


def test_jal_links_return_address():
    machine, status = execute(
        [jump(Opcode.JAL, BASE + 12), 0, addiu(9, 0, 1)]
    )
    assert status == 0
    assert machine.regs[31] == BASE + 8
    assert machine.regs[9] == 0


def test_store_and_load():
    machine, _ = execute(
        [
            i_type(Opcode.LUI, 0, 8, BASE >> 16),
            addiu(9, 0, -5),
            i_type(Opcode.SW, 8, 9, 0x200),
            i_type(Opcode.LBU, 8, 10, 0x200),
            i_type(Opcode.LW, 8, 11, 0x200),
            i_type(Opcode.LB, 8, 12, 0x200),
        ]
    )
    assert machine.memory.fetch_word(BASE + 0x200) == -5
    assert machine.regs[10] == -5 & 0xFF
    assert machine.regs[11] == -5
    assert machine.regs[12] == -5


def test_write_syscall():
    machine = make_machine(
        [
            addiu(4, 0, 1),
            i_type(Opcode.LUI, 0, 5, BASE >> 16),
            i_type(Opcode.ORI, 5, 5, 0x100),
            addiu(6, 0, 3),
            addiu(2, 0, 4),
            SYSCALL,
        ]
        + EXIT
    )
    machine.memory.load(BASE + 0x100, b"hi\n")
    assert machine.run(BASE, ["prog"], max_steps=100) == 0
    assert machine.files[1].getvalue() == b"hi\n"
    assert machine.regs[1] == 3


def test_read_syscall():
    machine = make_machine(
        [
            addiu(4, 0, 0),
            i_type(Opcode.LUI, 0, 5, BASE >> 16),
            i_type(Opcode.ORI, 5, 5, 0x300),
            addiu(6, 0, 3),
            addiu(2, 0, 3),
            SYSCALL,
        ]
        + EXIT
    )
    machine.files[0] = io.BytesIO(b"abcdef")
    machine.run(BASE, [], max_steps=100)
    assert machine.regs[1] == 3
    assert machine.memory.read_bytes(BASE + 0x300, 3) == b"abc"


def test_old_sbreak_rounds_to_page():
    machine, _ = execute([addiu(4, 0, 100), addiu(2, 0, 17), SYSCALL])
    assert machine.regs[1] == 8192


def test_unknown_syscall_raises():
    machine = make_machine([addiu(2, 0, 99), SYSCALL])
    with pytest.raises(MachineError, match="Unknown System call 99"):
        machine.run(BASE, [], max_steps=10)


def test_unimplemented_instruction_raises():
    machine = make_machine([r_type(1, 1, 1, 1)])
    with pytest.raises(MachineError, match="Unimplemented Instruction"):
        machine.run(BASE, [], max_steps=10)


def test_coprocessor_raises():
    machine = make_machine([i_type(Opcode.COP0, 0, 0, 1)])
    with pytest.raises(MachineError, match="coprocessors"):
        machine.run(BASE, [], max_steps=10)


def test_step_limit_raises():
    machine = make_machine([jump(Opcode.J, BASE), 0])
    with pytest.raises(MachineError):
        machine.run(BASE, [], max_steps=10)
    assert machine.icount == 10


def test_setup_arguments():
    machine = make_machine([])
    machine.setup_arguments(["prog", "x"])
    sp = machine.regs[29]
    memory = machine.memory
    assert sp == BASE + SIZE - 1024
    assert memory.fetch_word(sp) == 2
    assert memory.read_cstring(memory.fetch_word(sp + 4)) == b"prog"
    assert memory.read_cstring(memory.fetch_word(sp + 8)) == b"x"


def test_dump_registers():
    machine = make_machine([])
    machine.regs[1] = -1
    text = machine.dump_registers()
    lines = text.splitlines()
    assert len(lines) == 4
    assert lines[0].startswith(" 0: 00000000 ffffffff")
    assert lines[1].startswith(" 8:")
    assert machine._output.getvalue() == text


def test_trace_prints_disassembly():
    machine, _ = execute([addiu(8, 0, 5)], trace=True)
    assert "addiu" in machine._output.getvalue()


def test_trap_trace_and_break():
    machine = make_machine([addiu(2, 0, 1), r_type(SpecialOp.BREAK)], trap_trace=True)
    assert machine.run(BASE, [], max_steps=10) == 0
    output = machine._output.getvalue()
    assert "**breakpoint " in output
    assert "**System call 1" in output


@pytest.mark.parametrize("bits", range(32))
def test_ilog2_of_powers_of_two(bits):
    assert ilog2(1 << bits) == bits + 1


def test_ilog2_edges():
    assert ilog2(0) == 0
    assert ilog2(-1) == 32


def test_load_program_places_text():
    words = [addiu(8, 0, 5)] + EXIT
    memory = Memory(SIZE)
    logs = []
    load_program(memory, CoffFile.from_bytes(coff_bytes(words)), logs.append)
    assert "rdata section header missing" in logs
    assert memory.fetch_word(BASE) == words[0]
    machine = Machine(memory, output=io.StringIO())
    assert machine.run(BASE, ["a.out"], max_steps=10) == 0
    assert machine.regs[8] == 5


def test_load_program_too_large():
    words = [0, 0, 0, 0]
    memory = Memory(16)
    with pytest.raises(MachineError, match="MEMSIZE too small"):
        load_program(memory, CoffFile.from_bytes(coff_bytes(words)))


def test_main_runs_program(tmp_path, capsys):
    path = tmp_path / "prog.coff"
    path.write_bytes(coff_bytes([addiu(8, 0, 5)] + EXIT))
    assert main([str(path)]) == 0
    assert "rdata section header missing" in capsys.readouterr().out


def test_main_missing_file(tmp_path, capsys):
    missing = tmp_path / "nothing"
    assert main([str(missing)]) == 0
    assert "Could not open" in capsys.readouterr().err


def test_main_reports_bad_instruction(tmp_path, capsys):
    path = tmp_path / "bad.coff"
    path.write_bytes(coff_bytes([r_type(1, 1, 1, 1)]))
    assert main([str(path)]) == 2
    assert "Unimplemented Instruction" in capsys.readouterr().out