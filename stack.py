"""Growable stack of unsigned 64-bit integers.

Reading below the bottom never fails: the stack is treated as if it went on
forever, filled with random values that only exist while they are looked at.
"""

from __future__ import annotations
from typing import Iterator, List, Optional

import numpy as np
from numpy.typing import NDArray


MASK64 = (1 << 64) - 1
SEED_VALUE = 0o42


def u64(v: int) -> int:
    """Mask to unsigned 64 bits."""
    return int(v) & MASK64


class Stack:
    def __init__(self, rng: Optional[np.random.Generator] = None) -> None:
        self.rng = rng if rng is not None else np.random.default_rng()
        self._items: List[int] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[int]:
        # Top first, matching depth order.
        return reversed(self._items)

    def __repr__(self) -> str:
        return f"Stack({self._items!r})"

    def random_value(self) -> int:
        return int(self.rng.integers(0, MASK64, dtype=np.uint64, endpoint=True))

    def push(self, value: int) -> None:
        self._items.append(u64(value))

    def peek(self, depth: int = 0) -> int:
        if 0 <= depth < len(self._items):
            return self._items[-1 - depth]
        return self.random_value()

    def pop(self) -> int:
        if self._items:
            return self._items.pop()
        return self.random_value()

    def poke(self, depth: int, value: int) -> None:
        """Overwrite the element *depth* positions below the top.

        Writes below the explicit region are dropped, like values written
        into the random part of the stack.
        """
        if 0 <= depth < len(self._items):
            self._items[-1 - depth] = u64(value)

    def clear(self) -> None:
        self._items.clear()

    def seed(self, value: int = SEED_VALUE) -> None:
        self._items = [u64(value)]

    def snapshot(self) -> NDArray[np.uint64]:
        return np.array(self._items, dtype=np.uint64)
