"""Headers of MIPS little-endian COFF object files and of the NOFF format."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from os import PathLike
from typing import ClassVar, Optional, Union

MIPSELMAGIC = 0x0162
OMAGIC = 0o407
SOMAGIC = 0x0701
NOFFMAGIC = 0xBADFAD


class CoffFormatError(ValueError):
    """Raised when object file data is malformed or truncated."""


def _unpack(layout: struct.Struct, data: bytes) -> tuple:
    if len(data) < layout.size:
        raise CoffFormatError("File is too short")
    return layout.unpack_from(data)


_FILE_HEADER = struct.Struct("<HHiiiHH")
_OPTIONAL_HEADER = struct.Struct("<hh8i4ii")
_SECTION_HEADER = struct.Struct("<8s6IHHI")
_NOFF_HEADER = struct.Struct("<10i")


@dataclass
class FileHeader:
    """The COFF file header."""

    SIZE: ClassVar[int] = _FILE_HEADER.size

    magic: int = MIPSELMAGIC
    nscns: int = 0
    timdat: int = 0
    symptr: int = 0
    nsyms: int = 0
    opthdr: int = _OPTIONAL_HEADER.size
    flags: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "FileHeader":
        return cls(*_unpack(_FILE_HEADER, data))

    def to_bytes(self) -> bytes:
        return _FILE_HEADER.pack(
            self.magic, self.nscns, self.timdat, self.symptr,
            self.nsyms, self.opthdr, self.flags,
        )


@dataclass
class OptionalHeader:
    """The a.out system header that follows the file header."""

    SIZE: ClassVar[int] = _OPTIONAL_HEADER.size

    magic: int = OMAGIC
    vstamp: int = 0
    tsize: int = 0
    dsize: int = 0
    bsize: int = 0
    entry: int = 0
    text_start: int = 0
    data_start: int = 0
    bss_start: int = 0
    gprmask: int = 0
    cprmask: tuple[int, int, int, int] = (0, 0, 0, 0)
    gp_value: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "OptionalHeader":
        values = _unpack(_OPTIONAL_HEADER, data)
        return cls(*values[:10], cprmask=tuple(values[10:14]), gp_value=values[14])

    def to_bytes(self) -> bytes:
        return _OPTIONAL_HEADER.pack(
            self.magic, self.vstamp, self.tsize, self.dsize, self.bsize,
            self.entry, self.text_start, self.data_start, self.bss_start,
            self.gprmask, *self.cprmask, self.gp_value,
        )


@dataclass
class SectionHeader:
    """One COFF section header."""

    SIZE: ClassVar[int] = _SECTION_HEADER.size

    name: str = ""
    paddr: int = 0
    vaddr: int = 0
    size: int = 0
    scnptr: int = 0
    relptr: int = 0
    lnnoptr: int = 0
    nreloc: int = 0
    nlnno: int = 0
    flags: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "SectionHeader":
        raw_name, *rest = _unpack(_SECTION_HEADER, data)
        name = raw_name.split(b"\0", 1)[0].decode("latin-1")
        return cls(name, *rest)

    def to_bytes(self) -> bytes:
        raw_name = self.name.encode("latin-1")
        if len(raw_name) > 8:
            raise CoffFormatError(f"section name too long: {self.name!r}")
        return _SECTION_HEADER.pack(
            raw_name, self.paddr, self.vaddr, self.size, self.scnptr,
            self.relptr, self.lnnoptr, self.nreloc, self.nlnno, self.flags,
        )


@dataclass
class CoffFile:
    """A parsed MIPS little-endian COFF file together with its raw bytes."""

    header: FileHeader
    optional: OptionalHeader
    sections: list[SectionHeader]
    data: bytes = field(repr=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> "CoffFile":
        data = bytes(data)
        header = FileHeader.from_bytes(data)
        if header.magic != MIPSELMAGIC:
            raise CoffFormatError("File is not a MIPSEL COFF file")
        optional = OptionalHeader.from_bytes(data[FileHeader.SIZE:])
        start = FileHeader.SIZE + OptionalHeader.SIZE
        sections = [
            SectionHeader.from_bytes(data[start + index * SectionHeader.SIZE:])
            for index in range(header.nscns)
        ]
        return cls(header, optional, sections, data)

    def section(self, name: str) -> Optional[SectionHeader]:
        """Return the first section called ``name``, or None if there is none."""
        return next((s for s in self.sections if s.name == name), None)

    def section_data(self, section: SectionHeader) -> bytes:
        """Return the raw bytes the section header points at in the file."""
        end = section.scnptr + section.size
        if end > len(self.data):
            raise CoffFormatError("File is too short")
        return self.data[section.scnptr:end]


@dataclass
class Segment:
    """A NOFF segment: where it lives in memory and in the file."""

    virtual_addr: int = 0
    in_file_addr: int = 0
    size: int = 0


@dataclass
class NoffHeader:
    """The header of a NOFF object file."""

    SIZE: ClassVar[int] = _NOFF_HEADER.size

    noff_magic: int = NOFFMAGIC
    code: Segment = field(default_factory=Segment)
    init_data: Segment = field(default_factory=Segment)
    uninit_data: Segment = field(default_factory=Segment)

    @classmethod
    def from_bytes(cls, data: bytes) -> "NoffHeader":
        values = _unpack(_NOFF_HEADER, data)
        return cls(
            values[0],
            Segment(*values[1:4]),
            Segment(*values[4:7]),
            Segment(*values[7:10]),
        )

    def to_bytes(self) -> bytes:
        segments = (self.code, self.init_data, self.uninit_data)
        return _NOFF_HEADER.pack(
            self.noff_magic,
            *(
                value
                for seg in segments
                for value in (seg.virtual_addr, seg.in_file_addr, seg.size)
            ),
        )


def read_coff(path: Union[str, PathLike]) -> CoffFile:
    """Read and parse the COFF file at ``path``."""
    with open(path, "rb") as handle:
        return CoffFile.from_bytes(handle.read())