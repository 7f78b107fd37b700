"""Conversion of MIPS COFF executables to flat memory images."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from nachtools.coff import OMAGIC, CoffFile, CoffFormatError, SectionHeader
from nachtools.coff2noff import ConversionError

STACK_SIZE = 1024
_UNLOADED = (".bss", ".sbss")


def _parse(data: bytes) -> CoffFile:
    try:
        coff = CoffFile.from_bytes(data)
    except CoffFormatError as error:
        raise ConversionError(str(error)) from error
    if coff.optional.magic != OMAGIC:
        raise ConversionError("File is not a OMAGIC file")
    return coff


def _describe(section: SectionHeader) -> str:
    return (
        f'\t"{section.name}", filepos 0x{section.scnptr:x}, '
        f"mempos 0x{section.paddr:x}, size 0x{section.size:x}"
    )


def coff_to_flat(
    data: bytes,
    stack_size: int = STACK_SIZE,
    log: Optional[Callable[[str], object]] = None,
) -> bytes:
    """Return a flat image: the loaded sections one after another, then stack room.

    The image extends to the top of the highest section plus ``stack_size``,
    and its last word is zero so that the end can be found.
    """
    if stack_size < 4:
        raise ValueError("stack size must be at least 4 bytes")
    emit = log if log is not None else (lambda _: None)
    coff = _parse(data)
    emit(f"Loading {len(coff.sections)} sections:")
    image = bytearray()
    top = 0
    for section in coff.sections:
        emit(_describe(section))
        top = max(top, section.paddr + section.size)
        if section.name not in _UNLOADED:
            try:
                image += coff.section_data(section)
            except CoffFormatError as error:
                raise ConversionError(str(error)) from error
    emit(f"Adding stack of size: {stack_size}")
    end_word = top + stack_size - 4
    if len(image) < end_word + 4:
        image.extend(bytes(end_word + 4 - len(image)))
    image[end_word:end_word + 4] = bytes(4)
    return bytes(image)


def main(argv: Optional[list[str]] = None) -> int:
    """Command line entry: coff2flat <coffFileName> <flatFileName>."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) < 2:
        print("Usage: coff2flat <coffFileName> <flatFileName>", file=sys.stderr)
        return 1
    source, destination = args[0], args[1]
    try:
        data = Path(source).read_bytes()
        with open(destination, "wb") as out:
            out.write(coff_to_flat(data, log=print))
    except ConversionError as error:
        print(error, file=sys.stderr)
        return 1
    except OSError as error:
        print(f"{error.filename}: {error.strerror}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())