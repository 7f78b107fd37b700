"""LIFO stacks of integers with interchangeable array and linked-list storage."""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Optional


class StackOverflowError(Exception):
    """Raised when pushing onto a stack that has no room left."""


class StackUnderflowError(IndexError):
    """Raised when popping from an empty stack."""


@dataclass
class _Node:
    item: int
    next: Optional["_Node"] = None


class LinkedList:
    """A singly linked list that grows and shrinks at its front."""

    def __init__(self) -> None:
        self._first: Optional[_Node] = None
        self._length = 0

    def prepend(self, value: int) -> None:
        """Put a value at the beginning of the list."""
        self._first = _Node(value, self._first)
        self._length += 1

    def remove(self) -> int:
        """Take the value off the front of the list and return it."""
        if self._first is None:
            raise IndexError("remove from empty list")
        node = self._first
        self._first = node.next
        self._length -= 1
        return node.item

    def is_empty(self) -> bool:
        return self._first is None

    def __len__(self) -> int:
        return self._length

    def __iter__(self) -> Iterator[int]:
        node = self._first
        while node is not None:
            yield node.item
            node = node.next


class Stack(ABC):
    """An abstract last-in, first-out stack of integers."""

    @abstractmethod
    def push(self, value: int) -> None:
        """Push a value on the stack."""

    @abstractmethod
    def pop(self) -> int:
        """Pop the most recently pushed value off the stack."""

    @abstractmethod
    def is_full(self) -> bool:
        """Return True if no more values fit on the stack."""

    @abstractmethod
    def is_empty(self) -> bool:
        """Return True if the stack holds nothing."""

    def self_test(self, num_to_push: int) -> None:
        """Push numbers counting up from 17, then pop and print them all."""
        count = 17
        for _ in range(num_to_push):
            if self.is_full():
                raise StackOverflowError("stack is full")
            print(f"pushing {count}")
            self.push(count)
            count += 1
        while not self.is_empty():
            print(f"popping {self.pop()}")


class ArrayStack(Stack):
    """A stack with a fixed maximum capacity."""

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("stack size must be at least 1")
        self._size = size
        self._items: list[int] = []

    def push(self, value: int) -> None:
        if self.is_full():
            raise StackOverflowError("stack is full")
        self._items.append(value)

    def pop(self) -> int:
        if self.is_empty():
            raise StackUnderflowError("pop from empty stack")
        return self._items.pop()

    def is_full(self) -> bool:
        return len(self._items) == self._size

    def is_empty(self) -> bool:
        return not self._items


class ListStack(Stack):
    """An unbounded stack kept in a linked list; it is never full."""

    def __init__(self) -> None:
        self._list = LinkedList()

    def push(self, value: int) -> None:
        self._list.prepend(value)

    def pop(self) -> int:
        if self.is_empty():
            raise StackUnderflowError("pop from empty stack")
        return self._list.remove()

    def is_full(self) -> bool:
        return False

    def is_empty(self) -> bool:
        return self._list.is_empty()


def main(argv: Optional[list[str]] = None) -> int:
    """Run the self test on both stack implementations."""
    del argv
    stacks: list[tuple[str, Stack]] = [
        ("ArrayStack", ArrayStack(10)),
        ("ListStack", ListStack()),
    ]
    for name, stack in stacks:
        print(f"Testing {name}")
        stack.self_test(10)
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())