from __future__ import annotations

import numpy as np

from stack import MASK64, SEED_VALUE, Stack, u64


def _draw(rng: np.random.Generator) -> int:
    return int(rng.integers(0, MASK64, dtype=np.uint64, endpoint=True))


def test_u64_masks_negative_and_oversized_values() -> None:
    assert u64(-1) == MASK64
    assert u64((1 << 64) + 5) == 5


def test_push_pop_and_peek_by_depth(rng: np.random.Generator) -> None:
    stack = Stack(rng)
    for value in (1, 2, 3):
        stack.push(value)

    assert len(stack) == 3
    assert stack.peek(0) == 3
    assert stack.peek(2) == 1
    assert list(stack) == [3, 2, 1]
    assert stack.pop() == 3
    assert len(stack) == 2


def test_push_wraps_to_unsigned_64_bits(rng: np.random.Generator) -> None:
    stack = Stack(rng)
    stack.push(-1)
    stack.push(MASK64 + 3)
    assert stack.pop() == 2
    assert stack.pop() == MASK64


def test_peek_below_the_stack_is_random_and_does_not_mutate(rng: np.random.Generator, twin_rng: np.random.Generator) -> None:
    stack = Stack(rng)
    stack.push(7)

    assert stack.peek(1) == _draw(twin_rng)
    assert stack.peek(50) == _draw(twin_rng)
    assert len(stack) == 1
    assert stack.peek(0) == 7


def test_pop_on_empty_stack_never_fails(rng: np.random.Generator, twin_rng: np.random.Generator) -> None:
    stack = Stack(rng)
    first = stack.pop()
    second = stack.pop()

    assert first == _draw(twin_rng)
    assert second == _draw(twin_rng)
    for value in (first, second):
        assert 0 <= value <= MASK64
    assert len(stack) == 0


def test_default_generator_stays_in_range() -> None:
    stack = Stack()
    for _ in range(32):
        assert 0 <= stack.peek() <= MASK64
    assert len(stack) == 0


def test_poke_overwrites_in_place_and_ignores_the_abyss(rng: np.random.Generator) -> None:
    stack = Stack(rng)
    for value in (10, 20, 30):
        stack.push(value)

    stack.poke(1, 99)
    stack.poke(3, 5)
    stack.poke(-1, 5)

    assert list(stack) == [30, 99, 10]


def test_seed_and_snapshot(rng: np.random.Generator) -> None:
    stack = Stack(rng)
    stack.push(1)
    stack.push(2)
    stack.seed()

    assert list(stack) == [SEED_VALUE]
    assert SEED_VALUE == 34

    stack.push(MASK64)
    snapshot = stack.snapshot()
    assert snapshot.dtype == np.uint64
    assert [int(v) for v in snapshot] == [34, MASK64]

    stack.clear()
    assert len(stack) == 0
