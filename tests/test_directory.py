import pytest

from nachtools.directory import (
    ENTRY_SIZE,
    Directory,
    DirectoryEntry,
)


def test_name_limit_is_nine():
    directory = Directory(2)
    assert directory.add("abcdefghi", 1)
    assert directory.add("jklmnopqrs", 2)
    assert directory.names() == ["abcdefghi", "jklmnopqr"]


def test_new_directory_is_empty():
    directory = Directory(10)
    assert directory.names() == []
    assert directory.find("anything") is None


def test_add_then_find():
    directory = Directory(10)
    assert directory.add("alpha", 5) is True
    assert directory.find("alpha") == 5


def test_duplicate_add_fails():
    directory = Directory(10)
    assert directory.add("alpha", 5)
    assert directory.add("alpha", 6) is False
    assert directory.find("alpha") == 5


def test_full_directory_rejects_add():
    directory = Directory(2)
    assert directory.add("a", 1)
    assert directory.add("b", 2)
    assert directory.add("c", 3) is False
    assert directory.find("c") is None


def test_remove():
    directory = Directory(4)
    directory.add("a", 1)
    assert directory.remove("a") is True
    assert directory.find("a") is None
    assert directory.remove("a") is False


def test_removed_slot_is_reused_in_order():
    directory = Directory(3)
    directory.add("a", 1)
    directory.add("b", 2)
    directory.add("c", 3)
    directory.remove("b")
    assert directory.add("d", 4)
    assert directory.names() == ["a", "d", "c"]


def test_long_names_are_truncated_and_matched_by_prefix():
    directory = Directory(4)
    assert directory.add("abcdefghijk", 7)
    assert directory.names() == ["abcdefghi"]
    assert directory.find("abcdefghiXYZ") == 7
    assert directory.add("abcdefghiQ", 8) is False


def test_entries_are_copies():
    directory = Directory(4)
    directory.add("x", 3)
    entries = list(directory.entries())
    assert entries == [DirectoryEntry(True, 3, "x")]
    entries[0].sector = 99
    assert directory.find("x") == 3


def test_to_bytes_length():
    directory = Directory(10)
    assert len(directory.to_bytes()) == 10 * ENTRY_SIZE


def test_entry_size_matches_layout():
    assert len(DirectoryEntry(True, 1, "a").to_bytes()) == 20
    assert len(Directory(1).to_bytes()) == 20


def test_entry_round_trip():
    entry = DirectoryEntry(True, 42, "hello")
    assert DirectoryEntry.from_bytes(entry.to_bytes()) == entry


def test_entry_from_short_data_raises():
    with pytest.raises(ValueError):
        DirectoryEntry.from_bytes(b"\0" * (ENTRY_SIZE - 1))


def test_directory_round_trip():
    original = Directory(5)
    original.add("one", 10)
    original.add("two", 11)
    original.add("three", 12)
    original.remove("two")
    copy = Directory(5)
    copy.load(original.to_bytes())
    assert copy.names() == ["one", "three"]
    assert copy.find("three") == 12
    assert copy.find("two") is None
    assert copy.to_bytes() == original.to_bytes()


def test_load_short_data_raises():
    directory = Directory(3)
    with pytest.raises(ValueError):
        directory.load(b"\0" * (2 * ENTRY_SIZE))


def test_negative_size_raises():
    with pytest.raises(ValueError):
        Directory(-1)


def test_unused_entry_bytes_are_zero():
    directory = Directory(2)
    assert directory.to_bytes() == bytes(2 * ENTRY_SIZE)