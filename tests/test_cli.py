# tests/test_cli.py
from __future__ import annotations

import inspect
import sys
from dataclasses import dataclass, field
from pathlib import Path

import pytest

import codebridge.cli as cli
from codebridge.config import YAMLConfig
from codebridge.console import Console


@dataclass
class FakeUI:
    """
    UI abstraction used by CLI:
      - read(prompt) -> str
      - write(text) -> None
      - clear() -> None
    """

    inputs: list[str]
    outputs: list[str] = field(default_factory=list)
    clears: int = 0
    prompts: list[str] = field(default_factory=list)

    def read(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.inputs:
            raise EOFError
        return self.inputs.pop(0)

    def write(self, text: str) -> None:
        self.outputs.append(text)

    def clear(self) -> None:
        self.clears += 1


class NullEngine:
    def list_sessions(self) -> list:
        return []

    def close(self, session_id: str) -> None:
        pass


def make_console() -> Console:
    console = Console(engine=NullEngine(), config=YAMLConfig({"ui": {"prompt": "py>"}}))
    console.running = True
    return console


def write_user_config(data_home: Path, text: str) -> None:
    path = data_home / "codebridge" / "config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


# -------------------------------------------------------------------
# run_repl behavior
# -------------------------------------------------------------------


def test_cli_loop_skips_blank_and_writes_response(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Covers run_repl behavior (input_fn/output_fn loop).
    """
    c = make_console()
    calls = {"handled": 0}

    def fake_handle(line: str) -> str:
        calls["handled"] += 1
        if line == "quit":
            c.running = False
            return "bye"
        return "ok"

    monkeypatch.setattr(c, "handle_command", fake_handle)

    inputs = ["   ", "cmd", "quit"]
    outputs: list[str] = []

    cli.run_repl(c, input_fn=lambda prompt: inputs.pop(0), output_fn=outputs.append)

    assert calls["handled"] == 2  # blank skipped, cmd + quit handled
    assert outputs == ["ok", "bye"]


def test_cli_keyboard_interrupt_prints_bye_no_ui() -> None:
    c = make_console()

    def input_fn(_: str) -> str:
        raise KeyboardInterrupt

    out: list[str] = []
    cli.run_repl(c, input_fn=input_fn, output_fn=out.append)
    assert any("Bye!" in s for s in out)


def test_cli_eoferror_with_ui() -> None:
    """Empty inputs cause EOFError, which ends the loop with a goodbye."""
    c = make_console()
    ui = FakeUI(inputs=[])

    cli.run_repl(c, ui=ui)

    assert any("Bye!" in s for s in ui.outputs)


def test_cli_with_ui_reads_and_writes() -> None:
    c = make_console()
    ui = FakeUI(inputs=["help", "quit"])

    cli.run_repl(c, ui=ui)

    assert "Commands:" in ui.outputs[0]
    assert "Bye!" in ui.outputs[1]
    assert ui.prompts and "py>" in ui.prompts[0]
    assert not c.running


def test_cli_unhandled_exception_is_logged_and_loop_continues(
    monkeypatch: pytest.MonkeyPatch, data_home: Path
) -> None:
    c = make_console()

    def fake_handle(line: str) -> str:
        if line == "boom":
            raise RuntimeError("kaboom")
        c.running = False
        return "bye"

    monkeypatch.setattr(c, "handle_command", fake_handle)
    ui = FakeUI(inputs=["boom", "quit"])

    cli.run_repl(c, ui=ui)

    assert ui.outputs[0].startswith("[ERROR] Unhandled exception: RuntimeError: kaboom")
    assert ui.outputs[1] == "bye"
    crash_log = (data_home / "codebridge" / "logs" / "crash.log").read_text("utf-8")
    assert "context=command=boom" in crash_log
    assert "RuntimeError: kaboom" in crash_log


def test_cli_routes_clear_to_ui() -> None:
    """A clear command calls ui.clear() once and writes nothing."""
    c = make_console()
    ui = FakeUI(inputs=["clear", "quit"])

    cli.run_repl(c, ui=ui)

    assert ui.clears == 1
    assert ui.outputs == ["Bye!\n"]


def test_cli_routes_clear_to_ansi_when_no_ui() -> None:
    c = make_console()
    inputs = ["cls", "quit"]
    outputs: list[str] = []

    cli.run_repl(c, input_fn=lambda prompt: inputs.pop(0), output_fn=outputs.append)

    assert outputs[0] == "\033[2J\033[H"
    assert "Bye!" in outputs[1]


def test_cli_requires_ui_wiring_api() -> None:
    sig = inspect.signature(cli.run_repl)
    assert "ui" in sig.parameters


# -------------------------------------------------------------------
# cli.main
# -------------------------------------------------------------------


def test_cli_main_help(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["--help"]) == 0
    assert "usage: codebridge" in capsys.readouterr().out


def test_cli_main_rejects_extra_arguments(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["a.py", "b.py"]) == 2
    assert "usage: codebridge" in capsys.readouterr().err


def test_cli_main_ui_mode_writes_banner_once(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CODEBRIDGE_LEGACY_UI", raising=False)
    created: dict[str, object] = {}

    class StubUI:
        def __init__(self, console: Console) -> None:
            created["ui"] = self
            self.outputs: list[str] = []

        def write(self, text: str) -> None:
            self.outputs.append(text)

        def read(self, prompt: str) -> str:
            raise EOFError

        def read_input(self, prompt: str = "") -> str:
            raise EOFError

    monkeypatch.setattr(cli, "PromptToolkitUI", StubUI, raising=True)

    assert cli.main([]) == 0

    ui = created["ui"]
    assert "CodeBridge" in ui.outputs[0]
    assert any("Bye!" in s for s in ui.outputs)


def test_cli_main_legacy_mode_prints_banner(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CODEBRIDGE_LEGACY_UI", "1")
    printed: list[str] = []

    def fake_print(*args, **kwargs) -> None:
        printed.append(" ".join(str(a) for a in args))

    def fake_input(prompt: str = "") -> str:
        raise EOFError

    monkeypatch.setattr("builtins.print", fake_print, raising=False)
    monkeypatch.setattr("builtins.input", fake_input, raising=False)
    monkeypatch.setattr(cli, "run_repl", lambda *args, **kwargs: None, raising=True)

    assert cli.main([]) == 0
    assert any("CodeBridge" in s for s in printed)


@pytest.mark.parametrize(
    "source, expected_code, expected_text",
    [
        ("print('from file')\n", 0, "from file"),
        ("import sys\nprint('bad', file=sys.stderr)\nsys.exit(3)\n", 3, "bad"),
    ],
)
def test_cli_main_runs_file_and_returns_exit_code(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    data_home: Path,
    tmp_path: Path,
    source: str,
    expected_code: int,
    expected_text: str,
) -> None:
    monkeypatch.setenv("CODEBRIDGE_LEGACY_UI", "1")
    write_user_config(
        data_home,
        f"engine:\n  interpreter: {sys.executable!r}\n  grace_window_ms: 5000\n",
    )
    script = tmp_path / "prog.py"
    script.write_text(source, encoding="utf-8")

    assert cli.main([str(script)]) == expected_code

    out = capsys.readouterr().out
    assert "[RUN]" in out
    assert expected_text in out
    assert f"{expected_code} (" in out


def test_cli_main_missing_file_returns_1(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    monkeypatch.setenv("CODEBRIDGE_LEGACY_UI", "1")

    assert cli.main([str(tmp_path / "missing.py")]) == 1
    assert "cannot read" in capsys.readouterr().out
