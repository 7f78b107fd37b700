"""Conversion of MIPS COFF executables to the NOFF object format."""

from __future__ import annotations

import sys
from collections.abc import Callable
from os import PathLike
from pathlib import Path
from typing import Optional, Union

from nachtools.coff import (
    OMAGIC,
    CoffFile,
    CoffFormatError,
    NoffHeader,
    SectionHeader,
    Segment,
)

Log = Optional[Callable[[str], object]]


class ConversionError(CoffFormatError):
    """Raised when an object file cannot be converted."""


def _emit(log: Log, message: str) -> None:
    if log is not None:
        log(message)


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _parse(data: bytes) -> CoffFile:
    try:
        coff = CoffFile.from_bytes(data)
    except CoffFormatError as error:
        raise ConversionError(str(error)) from error
    if coff.optional.magic != OMAGIC:
        raise ConversionError("File is not a OMAGIC file")
    return coff


def _section_bytes(coff: CoffFile, section: SectionHeader) -> bytes:
    try:
        return coff.section_data(section)
    except CoffFormatError as error:
        raise ConversionError(str(error)) from error


def _describe(section: SectionHeader) -> str:
    return (
        f'\t"{section.name}", filepos 0x{section.scnptr:x}, '
        f"mempos 0x{section.paddr:x}, size 0x{section.size:x}"
    )


def coff_to_noff(data: bytes, log: Log = None) -> bytes:
    """Return the NOFF image of the COFF executable ``data``."""
    coff = _parse(data)
    count = len(coff.sections)
    _emit(log, f"numsections {count} ")

    header = NoffHeader()
    body = bytearray()
    _emit(log, f"Loading {count} sections:")
    for section in coff.sections:
        _emit(log, _describe(section))
        paddr = _int32(section.paddr)
        size = _int32(section.size)
        if section.size == 0:
            continue
        if section.name == ".text":
            header.code = Segment(paddr, NoffHeader.SIZE + len(body), size)
            body += _section_bytes(coff, section)
        elif section.name in (".data", ".rdata"):
            if header.init_data.size != 0:
                raise ConversionError("Can't handle both data and rdata")
            header.init_data = Segment(paddr, NoffHeader.SIZE + len(body), size)
            body += _section_bytes(coff, section)
        elif section.name in (".bss", ".sbss"):
            uninit = header.uninit_data
            if uninit.size != 0:
                if paddr == uninit.virtual_addr + uninit.size:
                    raise ConversionError("Can't handle both bss and sbss")
                uninit.size += size
            else:
                uninit.virtual_addr = paddr
                uninit.size = size
        else:
            raise ConversionError(f"Unknown segment type: {section.name}")
    return header.to_bytes() + bytes(body)


def convert_file(
    source: Union[str, PathLike],
    destination: Union[str, PathLike],
    log: Log = None,
) -> None:
    """Convert the COFF file ``source`` into the NOFF file ``destination``.

    If the conversion fails, no file is left at ``destination``.
    """
    data = Path(source).read_bytes()
    target = Path(destination)
    try:
        noff = coff_to_noff(data, log)
    except ConversionError:
        target.unlink(missing_ok=True)
        raise
    target.write_bytes(noff)


def main(argv: Optional[list[str]] = None) -> int:
    """Command line entry: coff2noff <coffFileName> <noffFileName>."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) < 2:
        print("Usage: coff2noff <coffFileName> <noffFileName>", file=sys.stderr)
        return 1
    source, destination = args[0], args[1]
    try:
        convert_file(source, destination, log=print)
    except ConversionError as error:
        print(error, file=sys.stderr)
        return 1
    except OSError as error:
        print(f"{error.filename}: {error.strerror}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())