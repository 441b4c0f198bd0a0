from __future__ import annotations

import sys

import pytest
import typer

from segmux import __main__ as main_module
from segmux.exceptions import SyncError


def _run_with(monkeypatch, command, argv=()) -> int:
    app = typer.Typer()
    app.command()(command)
    monkeypatch.setattr(main_module, "app", app)
    monkeypatch.setattr(sys, "argv", ["segmux", *argv])
    with pytest.raises(SystemExit) as excinfo:
        main_module.main()
    return excinfo.value.code


def test_interrupt_exits_with_130(monkeypatch) -> None:
    def run():
        raise KeyboardInterrupt

    assert _run_with(monkeypatch, run) == 130


def test_exit_codes_are_passed_through(monkeypatch) -> None:
    def run():
        raise typer.Exit(code=3)

    assert _run_with(monkeypatch, run) == 3


def test_successful_command_exits_with_zero(monkeypatch) -> None:
    def run():
        pass

    assert _run_with(monkeypatch, run) == 0


def test_usage_errors_keep_the_click_exit_code(monkeypatch) -> None:
    def run():
        pass

    assert _run_with(monkeypatch, run, ["--no-such-option"]) == 2


def test_domain_errors_exit_with_one(monkeypatch) -> None:
    def run():
        raise SyncError("en", "de")

    assert _run_with(monkeypatch, run) == 1


def test_declined_prompt_is_not_a_cancellation(monkeypatch) -> None:
    def run():
        raise typer.Abort()

    assert _run_with(monkeypatch, run) == 1
