# nachtools

Tools for little-endian MIPS programs built for a small teaching operating
system, plus a few data structures that go with them:

- `nachtools.coff`: dataclasses for the MIPS little-endian COFF file header,
  optional (a.out) header and section headers, `CoffFile` to parse a whole
  file, `read_coff` to read one from disk, and `NoffHeader`/`Segment` for the
  NOFF object format. Malformed or truncated data raises `CoffFormatError`.
- `nachtools.coff2noff`: `coff_to_noff` turns COFF bytes into NOFF bytes;
  `convert_file` does the same file to file and leaves no output file behind
  when conversion fails. Failures raise `ConversionError`.
- `nachtools.coff2flat`: `coff_to_flat` lays the loaded sections one after
  another and adds room for a stack (1024 bytes by default), ending in a zero
  word.
- `nachtools.instructions`: instruction field decoders (`rs`, `rt`, `rd`,
  `shamt`, `immed`, `off16`, `off26`, `top4`, `extend`), the `Opcode`,
  `SpecialOp` and `BcondOp` enums, and mnemonic lookup with
  `normal_op_name` / `special_op_name`.
- `nachtools.disassembler`: `format_instruction` renders one word;
  `disassemble` yields one line per word of a code buffer.
- `nachtools.interpreter`: `Memory`, `Machine` and `load_program` to run a
  COFF program on a simulated MIPS processor with a handful of system calls
  (exit, read, write, open, close, sbreak, lseek, ioctl, fstat, getpagesize).
- `nachtools.directory`: `Directory`, a fixed-size table of file names and
  header sector numbers, with `DirectoryEntry` and a byte serialisation.
- `nachtools.stacks`: the abstract `Stack`, the bounded `ArrayStack`, the
  unbounded `ListStack` and the `LinkedList` behind it.
- `nachtools.boundedstack`: `BoundedStack`, a fixed-capacity stack for
  values of any type.

No third-party libraries are needed; Python 3.10 or later is enough.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Commands

Convert a COFF object file to NOFF (the section list is printed as it goes):

```
nachtools-coff2noff program.coff program.noff
```

Convert a COFF object file to a flat memory image:

```
nachtools-coff2flat program.coff program.flat
```

Disassemble the `.text` section of a COFF file (defaults to `a.out`):

```
nachtools-disasm program.coff
```

Run a COFF program in the interpreter (defaults to `a.out`). `-t` traces each
instruction, `-T` traces system calls, `-r` dumps the registers with each
traced instruction, and `-m` takes four further arguments that are accepted
and ignored. The program's exit status becomes the command's exit status:

```
nachtools-run -t program.coff
```

Run the stack self-tests, which push a run of values and pop them back off:

```
nachtools-stacks
nachtools-boundedstack
```

## Library use

Stacks raise `StackOverflowError` when full and `StackUnderflowError` (an
`IndexError`) when empty:

```python
from nachtools.stacks import ArrayStack, ListStack, StackOverflowError

stack = ArrayStack(2)
stack.push(1)
stack.push(2)
assert stack.is_full()
try:
    stack.push(3)
except StackOverflowError:
    pass
assert stack.pop() == 2

unbounded = ListStack()
unbounded.push(17)
assert not unbounded.is_full()
assert unbounded.pop() == 17
```

Disassemble the text section of a COFF file:

```python
from nachtools.coff import read_coff
from nachtools.disassembler import disassemble

coff = read_coff("program.coff")
text = coff.section(".text")
for line in disassemble(coff.section_data(text), text.vaddr):
    print(line)
```

Run a program and collect its exit status:

```python
from nachtools.coff import read_coff
from nachtools.interpreter import Machine, Memory, load_program

memory = Memory()
load_program(memory, read_coff("program.coff"))
status = Machine(memory).run(memory.offset, ["program"], max_steps=1_000_000)
```

`Machine.run` raises `MachineError` for instructions or system calls the
machine does not support, and when `max_steps` is reached.

Keep a directory table:

```python
from nachtools.directory import Directory

directory = Directory(10)
assert directory.add("notes", 5)
assert directory.find("notes") == 5
assert directory.find("missing") is None

copy = Directory(10)
copy.load(directory.to_bytes())
assert copy.names() == ["notes"]
```

File names in a directory are limited to nine characters; longer names are
cut to nine both when stored and when looked up.

## What it does not do

- `nachtools.directory` is only the name table. There is no simulated disk,
  no file headers, no free-sector map and no file system built on top of it.
- The interpreter runs COFF files only; it does not load NOFF or flat
  images. It has no SWL, SWR or coprocessor instructions.
- There is no kernel here: the NOFF and flat images are produced, but
  nothing in the package runs them.