from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from errors import StackoweySyntaxError


DEFAULT_SOURCE = "9"
DEFAULT_DIRECTIVE = "#!/usr/bin/env -S stackowey -d"
DIRECTIVE_MARKER = "#!"


@dataclass(frozen=True)
class Playfield:
    rows: Tuple[str, ...]
    cells: NDArray[np.str_] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        width = len(self.rows[0]) if self.rows else 0
        grid = np.empty((len(self.rows), width), dtype="<U1")
        for index, row in enumerate(self.rows):
            if width:
                grid[index, :] = list(row)
        object.__setattr__(self, "cells", grid)

    @property
    def height(self) -> int:
        return int(self.cells.shape[0])

    @property
    def width(self) -> int:
        return int(self.cells.shape[1])

    @property
    def is_empty(self) -> bool:
        return self.height == 0 or self.width == 0

    def at(self, row: int, column: int) -> str:
        return str(self.cells[row % self.height, column % self.width])

    @property
    def source(self) -> str:
        return "\n".join(self.rows)


def _split_rows(text: str) -> List[str]:
    lines = str(text).split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def load_strict(text: str) -> Playfield:
    lines = _split_rows(text)
    if not lines:
        return Playfield((DEFAULT_SOURCE,))
    width = len(lines[0])
    for index, line in enumerate(lines):
        if len(line) != width:
            raise StackoweySyntaxError(
                f"Ragged grid: row {index} is {len(line)} wide, expected {width}",
                position=(index, min(len(line), width)),
            )
    return Playfield(tuple(lines))


def load_lenient(text: str) -> Playfield:
    lines = _split_rows(text)
    if not lines:
        return Playfield((DEFAULT_SOURCE,))
    width = max(len(line) for line in lines)
    return Playfield(tuple(line.ljust(width, " ") for line in lines))


def split_directive(text: str) -> Tuple[Optional[str], str]:
    """Separate a leading ``#!`` line from the program text."""
    text = str(text)
    first, _, rest = text.partition("\n")
    if first.startswith(DIRECTIVE_MARKER):
        return first, rest
    return None, text


def check_directive(line: str) -> str:
    line = str(line)
    if not line.startswith(DIRECTIVE_MARKER):
        raise StackoweySyntaxError(f"Directive line must start with '{DIRECTIVE_MARKER}'")
    return line
