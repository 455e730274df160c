"""Stackowey extension: opcode profile.

Counts how often each opcode rule runs and which cells are hottest. The
counters live on the interpreter as ``interpreter.profile`` and are cleared
on every reset. When the program halts a short summary goes to stderr.
"""

from __future__ import annotations

import sys
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from extensions import ExtensionAPI, StepEvent

STACKOWEY_EXTENSION_NAME = "profile"
STACKOWEY_EXTENSION_API_VERSION = 1

HOT_CELLS = 3


@dataclass
class Profile:
    rules: Counter = field(default_factory=Counter)
    cells: Counter = field(default_factory=Counter)
    halted_at: Optional[Tuple[int, int]] = None

    def summary(self) -> str:
        total = sum(self.rules.values())
        parts = [f"{rule}={count}" for rule, count in self.rules.most_common()]
        hot = ", ".join(f"({r},{c})x{n}" for (r, c), n in self.cells.most_common(HOT_CELLS))
        where = "" if self.halted_at is None else f"; halted at ({self.halted_at[0]},{self.halted_at[1]})"
        return f"profile: {total} steps; {' '.join(parts)}; hot cells: {hot or '-'}{where}"


def _profile(interpreter: Any) -> Profile:
    profile = getattr(interpreter, "profile", None)
    if profile is None:
        profile = Profile()
        setattr(interpreter, "profile", profile)
    return profile


def _on_reset(interpreter: Any) -> None:
    setattr(interpreter, "profile", Profile())


def _count(interpreter: Any, event: StepEvent) -> None:
    profile = _profile(interpreter)
    profile.rules[event.rule] += 1
    profile.cells[event.cell] += 1


def _on_halt(interpreter: Any, cell: Tuple[int, int]) -> None:
    profile = _profile(interpreter)
    profile.halted_at = cell
    print(profile.summary(), file=sys.stderr)


def stackowey_register(ext: ExtensionAPI) -> None:
    ext.metadata(name=STACKOWEY_EXTENSION_NAME, version="1.0.0")
    ext.on_event("reset", _on_reset)
    ext.on_event("halt", _on_halt)
    ext.every_n_steps(1, _count, name="profile_count")
