from __future__ import annotations

from pathlib import Path
from typing import Iterator, List

import pytest

from interpreter import Interpreter
from stackowey import render_grid, run_cli

PRINT_A = "777777777++++++++2+!9"


def _feed_stdin(monkeypatch: pytest.MonkeyPatch, lines: List[str]) -> None:
    it: Iterator[str] = iter(lines)

    def fake_input(prompt: str = "") -> str:
        try:
            return next(it)
        except StopIteration:
            raise EOFError

    monkeypatch.setattr("builtins.input", fake_input)


def test_runs_literal_source(capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["-source", PRINT_A]) == 0
    assert capsys.readouterr().out == "A"


def test_runs_a_file_with_a_directive_line(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    program = tmp_path / "hello.sw"
    program.write_text(f"#!/usr/bin/env -S stackowey -d\n{PRINT_A}\n", encoding="utf-8")
    assert run_cli([str(program)]) == 0
    assert capsys.readouterr().out == "A"


def test_missing_program(capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli([]) == 1
    assert run_cli(["/nonexistent/prog.sw"]) == 1
    assert "Failed to read" in capsys.readouterr().err


def test_ragged_grid_needs_friendly_mode(capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["-source", "9\n.."]) == 1
    assert "E_SYNTAX[1]" in capsys.readouterr().err
    assert run_cli(["-source", "-f", "9\n.."]) == 0


def test_queued_input(capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["-source", "?.!9", "--no-interactive", "-i", "B"]) == 0
    assert capsys.readouterr().out == "B"


def test_no_input_halts(capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["-source", "?.!9", "--no-interactive"]) == 0
    assert capsys.readouterr().out == ""


def test_interactive_input(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _feed_stdin(monkeypatch, ["C"])
    assert run_cli(["-source", "?.!9"]) == 0
    assert capsys.readouterr().out == "C"


def test_max_steps_stops_a_loop() -> None:
    assert run_cli(["-source", "1.", "-n", "50"]) == 0


def test_runtime_errors_set_the_exit_status(capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["-source", "\n", "--traceback-json"]) == 1
    err = capsys.readouterr().err
    assert "Traceback (most recent step last):" in err
    assert '"code": "E_SYNTAX"' in err


def test_debug_prints_the_trace(capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["-source", "12+!9", "-d"]) == 0
    err = capsys.readouterr().err
    assert err.startswith("s_000000 SEED <seed>")
    assert "'9' HALT" in err


def test_seed_makes_underflow_reproducible(capsys: pytest.CaptureFixture[str]) -> None:
    argv = ["-source", "..@9", "-d", "-verbose", "--seed", "7"]
    run_cli(argv)
    first = capsys.readouterr().err
    run_cli(argv)
    assert capsys.readouterr().err == first


def test_extension_flag(capsys: pytest.CaptureFixture[str]) -> None:
    ext = Path(__file__).resolve().parents[1] / "ext" / "opcode_profile.py"
    assert run_cli(["-source", "12+!9", "--ext", str(ext)]) == 0
    err = capsys.readouterr().err
    assert "profile: 5 steps" in err
    assert "halted at (0,4)" in err

    assert run_cli(["-source", "9", "--ext", "/nonexistent/ext.py"]) == 1


def test_extension_that_fails_to_import(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    ext = tmp_path / "crashy.py"
    ext.write_text("import this_module_does_not_exist\n", encoding="utf-8")
    assert run_cli(["-source", "9", "--ext", str(ext)]) == 1
    assert "ExtensionError" in capsys.readouterr().err


def test_unencodable_output_does_not_abort_the_run(capsys: pytest.CaptureFixture[str]) -> None:
    # 27 doubled eleven times is 0xD800, a lone surrogate.
    program = "7776+++" + "0@+" * 11 + "!9"
    assert run_cli(["-source", program]) == 0
    captured = capsys.readouterr()
    assert captured.out == "?"
    assert "E_UNKNOWN" not in captured.err


def test_stepper(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _feed_stdin(monkeypatch, ["", "s 2", "g", "r", "o", "s", "reset", "bogus", "q"])
    assert run_cli(["-source", "12+!9", "--step"]) == 0
    captured = capsys.readouterr()

    assert "steps: 3  halted: no" in captured.out
    assert "steps: 5  halted: yes" in captured.out
    assert "\x03" in captured.out
    assert "StackoweyRuntimeError" in captured.err
    assert "Unknown command: bogus" in captured.err


def test_render_grid_marks_the_pointer() -> None:
    interp = Interpreter("ab\ncd")
    interp.step()
    assert render_grid(interp).split("\n") == ["0 |ab|", "    ^", "1 |cd|"]
