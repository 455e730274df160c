from __future__ import annotations

import pytest

from pointer import Direction, InstructionPointer


@pytest.mark.parametrize(
    "direction, steps, expected",
    [
        (Direction.RIGHT, 1, Direction.DOWN),
        (Direction.UP, 1, Direction.RIGHT),
        (Direction.RIGHT, -1, Direction.UP),
        (Direction.LEFT, -1, Direction.DOWN),
    ],
)
def test_rotation_is_a_four_cycle(direction: Direction, steps: int, expected: Direction) -> None:
    assert direction.rotate(steps) == expected


def test_horizontal_directions() -> None:
    assert Direction.RIGHT.is_horizontal
    assert Direction.LEFT.is_horizontal
    assert not Direction.UP.is_horizontal
    assert not Direction.DOWN.is_horizontal


def test_up_increases_the_row_and_down_decreases_it() -> None:
    ip = InstructionPointer(row=1, column=1, direction=Direction.UP)
    ip.advance(4, 4)
    assert ip.position == (2, 1)

    ip.direction = Direction.DOWN
    ip.advance(4, 4)
    ip.advance(4, 4)
    assert ip.position == (0, 1)


def test_movement_wraps_on_every_edge() -> None:
    ip = InstructionPointer(row=0, column=0, direction=Direction.LEFT)
    ip.advance(3, 5)
    assert ip.position == (0, 4)

    ip.direction = Direction.DOWN
    ip.advance(3, 5)
    assert ip.position == (2, 4)

    ip.direction = Direction.RIGHT
    ip.advance(3, 5)
    assert ip.position == (2, 0)

    ip.direction = Direction.UP
    ip.advance(3, 5)
    assert ip.position == (0, 0)


def test_jump_accepts_far_coordinates_until_the_next_move() -> None:
    ip = InstructionPointer()
    ip.jump(10, 2**64 - 1)
    ip.advance(3, 4)
    assert ip.position == (10 % 3, (2**64) % 4)


def test_reset() -> None:
    ip = InstructionPointer(row=2, column=3, direction=Direction.UP)
    ip.reset()
    assert (ip.row, ip.column, ip.direction) == (0, 0, Direction.RIGHT)
