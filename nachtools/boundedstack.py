"""A fixed-capacity LIFO stack that can hold values of any type."""

from __future__ import annotations

import sys
from typing import Any, Generic, Optional, TypeVar

from nachtools.stacks import StackOverflowError, StackUnderflowError

T = TypeVar("T")


def _successor(value: Any) -> Any:
    """Return the value that follows ``value``; single characters step by code point."""
    if isinstance(value, str) and len(value) == 1:
        return chr(ord(value) + 1)
    return value + 1


class BoundedStack(Generic[T]):
    """A last-in, first-out stack holding at most ``size`` values."""

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("stack size must be at least 1")
        self._size = size
        self._items: list[T] = []

    def push(self, value: T) -> None:
        """Put a value on top of the stack; raise if the stack is full."""
        if self.is_full():
            raise StackOverflowError("stack is full")
        self._items.append(value)

    def pop(self) -> T:
        """Remove and return the top value; raise if the stack is empty."""
        if self.is_empty():
            raise StackUnderflowError("pop from empty stack")
        return self._items.pop()

    def is_full(self) -> bool:
        return len(self._items) == self._size

    def is_empty(self) -> bool:
        return not self._items

    def __len__(self) -> int:
        return len(self._items)

    def self_test(self, start: T) -> None:
        """Fill the stack with values counting up from ``start``, then pop and print them."""
        count = start
        while not self.is_full():
            print(f"pushing {count}")
            self.push(count)
            count = _successor(count)
        while not self.is_empty():
            print(f"popping {self.pop()}")


def main(argv: Optional[list[str]] = None) -> int:
    """Run the self test on a stack of integers and a stack of characters."""
    del argv
    ints: BoundedStack[int] = BoundedStack(10)
    chars: BoundedStack[str] = BoundedStack(10)

    print("Testing Stack<int>")
    ints.self_test(17)

    print("Testing Stack<char>")
    chars.self_test("a")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())