from __future__ import annotations
import itertools
import json
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from channel import InputProvider, IOChannel, OutputSink
from errors import (
    ErrorCode,
    StackoweyError,
    StackoweyRuntimeError,
    StackoweySyntaxError,
)
from extensions import HookRegistry, RuntimeServices, StepEvent, build_default_services
from playfield import (
    DEFAULT_DIRECTIVE,
    DEFAULT_SOURCE,
    Playfield,
    check_directive,
    load_lenient,
    load_strict,
    split_directive,
)
from pointer import Direction, InstructionPointer
from stack import SEED_VALUE, Stack


# Rule names used in the state log and tracebacks.
OPCODE_RULES: Dict[str, str] = {
    **{digit: "PUSH" for digit in "01234567"},
    "+": "ADD",
    "_": "NOT",
    ".": "DROP",
    "8": "WHERE",
    "%": "JUMP",
    "9": "HALT",
    "!": "EMIT",
    "?": "READ",
    "/": "MIRROR",
    "\\": "BACKMIRROR",
    "#": "SWAP",
    "@": "PICK",
    "=": "DEPTH",
}

STACK_SNAPSHOT_DEPTH = 8


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    location: Optional[Tuple[int, int]]
    direction: Optional[Direction]
    opcode: Optional[str]
    rule: str
    depth: int
    stack_top: Optional[List[int]] = None
    message: Optional[str] = None

    def render(self) -> str:
        if self.opcode is None:
            text = f"{self.state_id} {self.rule}"
            if self.message:
                text += f" {self.message}"
            return text
        row, column = self.location or (0, 0)
        direction = self.direction.name if self.direction is not None else "?"
        text = f"{self.state_id} ({row},{column}) {direction} {self.opcode!r} {self.rule} depth={self.depth}"
        if self.stack_top is not None:
            text += f" top={self.stack_top}"
        return text


class StateLogger:
    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        self.entries: List[StateEntry] = []
        self.next_state_index = 0

    def clear(self) -> None:
        self.entries = []
        self.next_state_index = 0

    def record(
        self,
        *,
        rule: str,
        location: Optional[Tuple[int, int]] = None,
        direction: Optional[Direction] = None,
        opcode: Optional[str] = None,
        depth: int = 0,
        stack_top: Optional[List[int]] = None,
        message: Optional[str] = None,
    ) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            location=location,
            direction=direction,
            opcode=opcode,
            rule=rule,
            depth=depth,
            stack_top=stack_top if self.verbose else None,
            message=message,
        )
        self.entries.append(entry)
        self.next_state_index += 1
        return entry

    def step_entries(self) -> List[StateEntry]:
        return [entry for entry in self.entries if entry.opcode is not None]

    def render(self) -> str:
        return "\n".join(entry.render() for entry in self.entries)


OpcodeImpl = Callable[[str], None]


class Interpreter:
    def __init__(
        self,
        source: str = DEFAULT_SOURCE,
        *,
        filename: str = "<string>",
        input_provider: Optional[InputProvider] = None,
        input_prompt: Optional[str] = None,
        output_sink: Optional[OutputSink] = None,
        rng: Optional[np.random.Generator] = None,
        friendly: bool = False,
        verbose: bool = False,
        services: Optional[RuntimeServices] = None,
    ) -> None:
        self.filename = filename if filename == "<string>" else os.path.abspath(filename)
        self.verbose = verbose
        self.services = services or build_default_services()
        self.hook_registry: HookRegistry = self.services.hook_registry
        self.stack = Stack(rng)
        self.pointer = InstructionPointer()
        self.channel = IOChannel(input_provider=input_provider, prompt=input_prompt, output_sink=output_sink)
        self.logger = StateLogger(verbose=verbose)
        self.halted = True
        self.step_count = 0
        self.last_error: Optional[StackoweyError] = None
        self._playfield = Playfield((DEFAULT_SOURCE,))
        self._dispatch: Dict[str, OpcodeImpl] = self._build_dispatch()

        directive, body = split_directive(source)
        self._directive = directive if directive is not None else DEFAULT_DIRECTIVE
        if friendly:
            self.friendly_source_code = body
        else:
            self.source_code = body

    def _build_dispatch(self) -> Dict[str, OpcodeImpl]:
        table: Dict[str, OpcodeImpl] = {digit: self._push_digit for digit in "01234567"}
        table.update(
            {
                "+": self._add,
                "_": self._not,
                ".": self._drop,
                "8": self._where,
                "%": self._jump,
                "9": self._halt,
                "!": self._emit,
                "?": self._read,
                "/": self._mirror,
                "\\": self._backmirror,
                "#": self._swap,
                "@": self._pick,
                "=": self._depth,
            }
        )
        return table

    # ---- source ----

    @property
    def playfield(self) -> Playfield:
        return self._playfield

    @property
    def source_code(self) -> str:
        return self._playfield.source

    @source_code.setter
    def source_code(self, code: str) -> None:
        # A failed load leaves the previous grid in place, but halted.
        self.halted = True
        self._playfield = load_strict(code)
        self.reset()

    @property
    def friendly_source_code(self) -> str:
        return self._playfield.source

    @friendly_source_code.setter
    def friendly_source_code(self, code: str) -> None:
        self.halted = True
        self._playfield = load_lenient(code)
        self.reset()

    @property
    def directive_line(self) -> str:
        return self._directive

    @directive_line.setter
    def directive_line(self, line: str) -> None:
        self._directive = check_directive(line)

    @property
    def full_source(self) -> str:
        return f"{self._directive}\n{self.source_code}\n"

    # ---- I/O ----

    def feed_input(self, text: str) -> None:
        self.channel.feed(text)

    @property
    def input_queue(self) -> Tuple[str, ...]:
        return self.channel.queued()

    def drain_output(self) -> str:
        """Return the accumulated output and clear it."""
        return self.channel.drain()

    @property
    def trace_log(self) -> str:
        return self.logger.render()

    # ---- execution ----

    @property
    def current_opcode(self) -> Optional[str]:
        if self._playfield.is_empty:
            return None
        return self._playfield.at(self.pointer.row, self.pointer.column)

    def reset(self) -> None:
        self.stack.seed(SEED_VALUE)
        self.pointer.reset()
        self.channel.clear()
        self.logger.clear()
        self.logger.record(rule="SEED", message="<seed>")
        self.step_count = 0
        self.last_error = None
        self.halted = False
        self.hook_registry.emit("reset", self)

    def step(self) -> None:
        if self.halted:
            raise StackoweyRuntimeError("Cannot step a halted program; reset it first", position=self.pointer.position)
        playfield = self._playfield
        if playfield.is_empty:
            raise StackoweySyntaxError("Playfield is empty; there is no opcode to execute")

        location = self.pointer.position
        opcode = playfield.at(*location)
        rule = OPCODE_RULES.get(opcode, "NOP")
        handler = self._dispatch.get(opcode)
        try:
            if handler is not None:
                handler(opcode)
        except Exception as exc:
            error = self._fault(exc, location, f"Unexpected failure while executing {opcode!r}")
            if error is exc:
                raise
            raise error from exc

        self.pointer.advance(playfield.height, playfield.width)
        self.step_count += 1
        self.logger.record(
            rule=rule,
            location=location,
            direction=self.pointer.direction,
            opcode=opcode,
            depth=len(self.stack),
            stack_top=list(itertools.islice(self.stack, STACK_SNAPSHOT_DEPTH)) if self.verbose else None,
        )
        try:
            if self.hook_registry.has_watchers():
                event = StepEvent(
                    index=self.step_count,
                    cell=location,
                    opcode=opcode,
                    rule=rule,
                    heading=self.pointer.direction,
                    depth=len(self.stack),
                )
                self.hook_registry.after_step(self, event)
            if self.halted:
                self.hook_registry.emit("halt", self, location)
        except Exception as exc:
            error = self._fault(exc, location, f"Extension hook failed after {opcode!r}", self.step_count - 1)
            if error is exc:
                raise
            raise error from exc

    def _fault(self, exc: Exception, location: Tuple[int, int], context: str, step_index: Optional[int] = None) -> StackoweyError:
        """Attach position and step index to *exc*, wrapping foreign exceptions as E_UNKNOWN."""
        if isinstance(exc, StackoweyError):
            error = exc
            if error.position is None:
                error.position = location
        else:
            error = StackoweyError(f"{context}: {exc}", code=ErrorCode.E_UNKNOWN, position=location)
        error.step_index = self.step_count if step_index is None else step_index
        return error

    def run(self, max_steps: Optional[int] = None) -> Optional[StackoweyError]:
        """Step until halted or *max_steps* steps have run.

        The first error stops the loop; it is stored in ``last_error`` and
        returned instead of being raised.
        """
        self.last_error = None
        executed = 0
        while not self.halted and (max_steps is None or executed < max_steps):
            try:
                self.step()
            except StackoweyError as error:
                self.last_error = error
                self.logger.record(rule="ERROR", message=f"{error.name}: {error.message}")
                self.hook_registry.emit("error", self, error)
                break
            executed += 1
        return self.last_error

    # ---- opcodes ----

    def _push_digit(self, opcode: str) -> None:
        self.stack.push(int(opcode))

    def _add(self, _: str) -> None:
        self.stack.push(self.stack.pop() + self.stack.pop())

    def _not(self, _: str) -> None:
        self.stack.push(~self.stack.pop())

    def _drop(self, _: str) -> None:
        self.stack.pop()

    def _where(self, _: str) -> None:
        self.stack.push(self.pointer.row)
        self.stack.push(self.pointer.column)

    def _jump(self, _: str) -> None:
        column = self.stack.pop()
        row = self.stack.pop()
        self.pointer.jump(row, column)

    def _halt(self, _: str) -> None:
        self.halted = True

    def _emit(self, _: str) -> None:
        code = self.stack.pop()
        char = self.channel.write(code)
        self.hook_registry.emit("output", self, code, char)

    def _read(self, _: str) -> None:
        line = self.channel.read_line()
        if line is None:
            self.halted = True
            return
        for char in line:
            self.stack.push(ord(char))
        self.stack.push(0)
        self.hook_registry.emit("input", self, line)

    def _mirror(self, _: str) -> None:
        a = self.stack.pop()
        b = self.stack.pop()
        if a > b:
            self.pointer.turn(1 if self.pointer.direction.is_horizontal else -1)

    def _backmirror(self, _: str) -> None:
        a = self.stack.pop()
        b = self.stack.pop()
        if a < b:
            self.pointer.turn(-1 if self.pointer.direction.is_horizontal else 1)

    def _swap(self, _: str) -> None:
        index = self.stack.pop()
        if index >= len(self.stack):
            # Swapping with a value below the stack loses the top into the
            # abyss and brings up a random one.
            self.stack.pop()
            self.stack.push(self.stack.random_value())
            return
        value_at = self.stack.peek(index)
        value = self.stack.pop()
        self.stack.poke(index - 1, value)
        self.stack.push(value_at)

    def _pick(self, _: str) -> None:
        index = self.stack.pop()
        self.stack.push(self.stack.peek(index))

    def _depth(self, _: str) -> None:
        self.stack.push(len(self.stack))


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter, context: int = 5) -> None:
        self.interpreter = interpreter
        self.context = context

    def recent_entries(self) -> List[StateEntry]:
        entries = self.interpreter.logger.step_entries()
        return entries[-self.context:] if self.context > 0 else []

    def format_text(self, error: StackoweyError, verbose: bool) -> str:
        lines = ["Traceback (most recent step last):"]
        filename = self.interpreter.filename
        for entry in self.recent_entries():
            row, column = entry.location or (0, 0)
            lines.append(f"  File \"{filename}\", row {row}, column {column}, state {entry.state_id}")
            direction = entry.direction.name if entry.direction is not None else "?"
            lines.append(f"    {entry.opcode!r} {entry.rule} -> {direction}, depth {entry.depth}")
            if verbose and entry.stack_top is not None:
                lines.append(f"    Stack top: {', '.join(str(v) for v in entry.stack_top)}")
        if error.position is not None:
            row, column = error.position
            opcode = self.interpreter.playfield.at(row, column) if not self.interpreter.playfield.is_empty else None
            lines.append(f"  Failing cell: row {row}, column {column}, opcode {opcode!r}")
        lines.append(f"{error.__class__.__name__}: {error.message} ({error.name})")
        return "\n".join(lines)

    def to_json(self, error: StackoweyError) -> str:
        steps: List[Dict[str, Any]] = []
        for entry in self.recent_entries():
            item: Dict[str, Any] = {
                "state_id": entry.state_id,
                "step_index": entry.step_index,
                "location": list(entry.location) if entry.location else None,
                "direction": entry.direction.name if entry.direction is not None else None,
                "opcode": entry.opcode,
                "rule": entry.rule,
                "depth": entry.depth,
            }
            if entry.stack_top is not None:
                item["stack_top"] = entry.stack_top
            steps.append(item)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "code": error.code.name,
                "message": error.message,
                "position": list(error.position) if error.position else None,
                "failing_step_index": error.step_index,
            },
            "file": self.interpreter.filename,
            "traceback": steps,
        }
        return json.dumps(data, indent=2)
