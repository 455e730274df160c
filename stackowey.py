"""Stackowey entry point and stepper wiring."""

from __future__ import annotations
import argparse
import itertools
import sys
from typing import List, Optional

import numpy as np

from errors import StackoweyError
from extensions import StackoweyExtensionError, load_runtime_services
from interpreter import Interpreter, TracebackFormatter


STEPPER_PROMPT = "\x1b[38;2;153;221;255m(sw)\033[0m "
STEPPER_HELP = """Commands:
  s [n]     step n times (blank line steps once)
  r [n]     run until halt, error or n steps
  p         show pointer and stack
  g         show the grid with the pointer marked
  o         print and clear accumulated output
  i TEXT    queue a line of input
  t         print the trace log
  reset     reset the program
  q         quit"""


def _printable(text: str) -> str:
    # Lone surrogates and characters stdout cannot encode become "?".
    encoding = getattr(sys.stdout, "encoding", None) or "utf-8"
    return text.encode(encoding, "replace").decode(encoding)


def _write_output(text: str) -> None:
    sys.stdout.write(_printable(text))
    sys.stdout.flush()


def _exit_status(error: StackoweyError) -> int:
    code = int(error.code)
    return code if code > 0 else 255


def describe_state(interpreter: Interpreter, depth: int = 8) -> str:
    pointer = interpreter.pointer
    top = list(itertools.islice(interpreter.stack, depth))
    more = " ..." if len(interpreter.stack) > depth else ""
    lines = [
        f"row {pointer.row}, column {pointer.column}, heading {pointer.direction.name}, "
        f"opcode {interpreter.current_opcode!r}",
        f"steps: {interpreter.step_count}  halted: {'yes' if interpreter.halted else 'no'}",
        f"stack ({len(interpreter.stack)}, top first): {' '.join(str(v) for v in top)}{more}",
    ]
    return "\n".join(lines)


def render_grid(interpreter: Interpreter) -> str:
    rows = interpreter.playfield.rows
    pointer = interpreter.pointer
    width = len(str(max(len(rows) - 1, 0)))
    lines: List[str] = []
    for index, row in enumerate(rows):
        lines.append(f"{index:>{width}} |{row}|")
        if index == pointer.row:
            lines.append(" " * (width + 2) + " " * pointer.column + "^")
    return "\n".join(lines)


def _count_arg(text: str, default: Optional[int]) -> Optional[int]:
    if not text:
        return default
    count = int(text)
    if count < 0:
        raise ValueError("count must not be negative")
    return count


def run_stepper(interpreter: Interpreter, verbose: bool) -> int:
    print("\x1b[38;2;153;221;255mStackowey\033[0m stepper. Type 'h' for help.")
    formatter = TracebackFormatter(interpreter)
    print(describe_state(interpreter))

    while True:
        try:
            line = input(STEPPER_PROMPT)
        except EOFError:
            print()
            break

        command, _, arg = line.strip().partition(" ")
        command = command.lower() or "s"
        arg = arg.strip()
        try:
            if command in ("q", "quit"):
                break
            elif command in ("h", "help", "?"):
                print(STEPPER_HELP)
            elif command in ("s", "step"):
                for _ in range(_count_arg(arg, 1) or 0):
                    interpreter.step()
                    if interpreter.halted:
                        break
                print(describe_state(interpreter))
            elif command in ("r", "run"):
                error = interpreter.run(_count_arg(arg, None))
                if error is not None:
                    print(formatter.format_text(error, verbose=verbose), file=sys.stderr)
                print(describe_state(interpreter))
            elif command in ("p", "print"):
                print(describe_state(interpreter))
            elif command in ("g", "grid"):
                print(render_grid(interpreter))
            elif command in ("o", "output"):
                print(_printable(interpreter.drain_output()))
            elif command in ("i", "input"):
                interpreter.feed_input(arg)
            elif command in ("t", "trace"):
                print(interpreter.trace_log)
            elif command == "reset":
                interpreter.reset()
                print(describe_state(interpreter))
            else:
                print(f"Unknown command: {command}", file=sys.stderr)
        except ValueError as exc:
            print(f"Bad count: {exc}", file=sys.stderr)
        except StackoweyError as error:
            print(formatter.format_text(error, verbose=verbose), file=sys.stderr)

    return 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Stackowey reference interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-f", "--friendly", action="store_true", help="Pad ragged rows with spaces instead of rejecting them")
    parser.add_argument("-d", "--debug", action="store_true", help="Print the trace log to stderr after the run")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Include stack snapshots in the trace log and tracebacks")
    parser.add_argument("-n", "--max-steps", type=int, default=None, help="Stop after this many steps")
    parser.add_argument("-i", "--input", action="append", default=[], help="Queue input text (may be repeated)")
    parser.add_argument("--prompt", default=None, help="Prompt shown when the program asks for interactive input")
    parser.add_argument("--no-interactive", action="store_true", help="Halt instead of asking for input when the queue is empty")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the values read below the stack")
    parser.add_argument("--ext", action="append", default=[], help="Load a runtime extension (.py or .stkx)")
    parser.add_argument("--step", action="store_true", help="Start the interactive stepper")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    args = parser.parse_args(argv)

    if args.program is None:
        print("A program file (or -source with program text) is required", file=sys.stderr)
        return 1

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return 1

    try:
        services = load_runtime_services(args.ext)
    except StackoweyExtensionError as exc:
        print(f"ExtensionError: {exc}", file=sys.stderr)
        return 1

    try:
        interpreter = Interpreter(
            source_text,
            filename=filename,
            input_provider=None if args.no_interactive else input,
            input_prompt=args.prompt,
            output_sink=None if args.step else _write_output,
            rng=np.random.default_rng(args.seed),
            friendly=args.friendly,
            verbose=args.verbose,
            services=services,
        )
    except StackoweyError as error:
        print(f"{error.__class__.__name__}: {error.message} ({error.name})", file=sys.stderr)
        return _exit_status(error)

    for text in args.input:
        interpreter.feed_input(text)

    if args.step:
        return run_stepper(interpreter, verbose=args.verbose)

    error = interpreter.run(args.max_steps)
    if args.debug:
        print(interpreter.trace_log, file=sys.stderr)
    if error is not None:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return _exit_status(error)
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
