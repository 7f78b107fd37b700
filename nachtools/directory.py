"""A flat directory of file names, each mapped to the disk sector of its header."""

from __future__ import annotations

import struct
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Optional

FILE_NAME_MAX_LEN = 9

# in-use flag (padded to a word), header sector, name with room for a NUL.
_ENTRY = struct.Struct(f"<?3xi{FILE_NAME_MAX_LEN + 1}s2x")
ENTRY_SIZE = _ENTRY.size


def _key(name: str) -> str:
    """Return the part of ``name`` that is stored and compared."""
    return name.split("\0", 1)[0][:FILE_NAME_MAX_LEN]


@dataclass
class DirectoryEntry:
    """One slot of a directory: whether it is used, its name and header sector."""

    in_use: bool = False
    sector: int = 0
    name: str = ""

    def to_bytes(self) -> bytes:
        """Return the fixed-size on-disk form of this entry."""
        raw_name = _key(self.name).encode("latin-1")
        return _ENTRY.pack(self.in_use, self.sector, raw_name)

    @classmethod
    def from_bytes(cls, data: bytes) -> "DirectoryEntry":
        """Parse an entry from the first ``ENTRY_SIZE`` bytes of ``data``."""
        if len(data) < ENTRY_SIZE:
            raise ValueError("directory entry data is too short")
        in_use, sector, raw_name = _ENTRY.unpack_from(data)
        name = raw_name.split(b"\0", 1)[0].decode("latin-1")
        return cls(bool(in_use), sector, name[:FILE_NAME_MAX_LEN])


class Directory:
    """A fixed-size table of directory entries.

    Names longer than ``FILE_NAME_MAX_LEN`` characters are truncated, both when
    stored and when looked up. Callers provide any mutual exclusion needed.
    """

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError("directory size must not be negative")
        self._table = [DirectoryEntry() for _ in range(size)]

    def __len__(self) -> int:
        return len(self._table)

    def _find_entry(self, name: str) -> Optional[DirectoryEntry]:
        key = _key(name)
        return next(
            (entry for entry in self._table if entry.in_use and entry.name == key),
            None,
        )

    def find(self, name: str) -> Optional[int]:
        """Return the header sector of file ``name``, or None if it is not here."""
        entry = self._find_entry(name)
        return entry.sector if entry is not None else None

    def add(self, name: str, sector: int) -> bool:
        """Add a file; return False if the name exists or the directory is full."""
        if self._find_entry(name) is not None:
            return False
        key = _key(name)
        key.encode("latin-1")
        for entry in self._table:
            if not entry.in_use:
                entry.in_use = True
                entry.name = key
                entry.sector = sector
                return True
        return False

    def remove(self, name: str) -> bool:
        """Remove a file; return False if it is not in the directory."""
        entry = self._find_entry(name)
        if entry is None:
            return False
        entry.in_use = False
        return True

    def names(self) -> list[str]:
        """Return the names of all files in the directory, in table order."""
        return [entry.name for entry in self._table if entry.in_use]

    def entries(self) -> Iterator[DirectoryEntry]:
        """Yield copies of the entries in use, in table order."""
        for entry in self._table:
            if entry.in_use:
                yield DirectoryEntry(entry.in_use, entry.sector, entry.name)

    def to_bytes(self) -> bytes:
        """Return the on-disk form of the whole table."""
        return b"".join(entry.to_bytes() for entry in self._table)

    def load(self, data: bytes) -> None:
        """Replace the table contents with those stored in ``data``."""
        needed = len(self._table) * ENTRY_SIZE
        if len(data) < needed:
            raise ValueError(
                f"directory data is too short: {len(data)} bytes, need {needed}"
            )
        self._table = [
            DirectoryEntry.from_bytes(data[offset:offset + ENTRY_SIZE])
            for offset in range(0, needed, ENTRY_SIZE)
        ]