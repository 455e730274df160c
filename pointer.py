from __future__ import annotations
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Tuple


class Direction(IntEnum):
    RIGHT = 0
    DOWN = 1
    LEFT = 2
    UP = 3

    @property
    def is_horizontal(self) -> bool:
        return self in (Direction.RIGHT, Direction.LEFT)

    def rotate(self, steps: int) -> "Direction":
        return Direction((int(self) + steps) % 4)


# Row deltas are inverted relative to the visual line order: UP moves to the
# next line of the source, DOWN to the previous one.
DELTAS: Dict[Direction, Tuple[int, int]] = {
    Direction.RIGHT: (0, 1),
    Direction.DOWN: (-1, 0),
    Direction.LEFT: (0, -1),
    Direction.UP: (1, 0),
}


@dataclass
class InstructionPointer:
    row: int = 0
    column: int = 0
    direction: Direction = Direction.RIGHT

    @property
    def position(self) -> Tuple[int, int]:
        return (self.row, self.column)

    def reset(self) -> None:
        self.row = 0
        self.column = 0
        self.direction = Direction.RIGHT

    def jump(self, row: int, column: int) -> None:
        self.row = int(row)
        self.column = int(column)

    def turn(self, steps: int) -> None:
        self.direction = self.direction.rotate(steps)

    def advance(self, height: int, width: int) -> None:
        d_row, d_col = DELTAS[self.direction]
        self.row = (self.row + d_row) % height
        self.column = (self.column + d_col) % width
