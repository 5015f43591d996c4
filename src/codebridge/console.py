# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
CodeBridge console.

The terminal front end's session logic, kept free of any UI toolkit:
- command dispatch (run / sessions / close / help / quit)
- direct results rendered with RUN / EXIT tags
- interactive attachment: poll the engine on a fixed cadence, stream
  output through ``output_fn``, and ask ``input_fn`` for a line whenever
  the session reports it is waiting for input

Important boundary:
- Console does not load YAML; it consumes the injected ConfigModel.
- Console talks to the program only through the Engine protocol.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .capture import STREAM_STDERR, OutputChunk
from .config import ANSI_COLORS, TAG_COLORS, UI_CLEAR
from .engine import DirectResult, SessionStarted
from .errors import ClosedPipe, SessionNotFound, SpawnFailure
from .interfaces import ConfigModel, Engine
from .session import SessionStatus

COMMANDS: dict[str, tuple[str, ...]] = {
    "run": ("run", "r"),
    "sessions": ("sessions", "ps"),
    "close": ("close",),
    "clear": ("clear", "cls"),
    "help": ("help", "?"),
    "quit": ("quit", "exit", "q"),
}

HELP_TEXT = """\
Commands:
  run PATH      run a program file (alias: r)
  sessions      list interactive sessions (alias: ps)
  close ID      stop a session
  clear         clear the screen (alias: cls, Ctrl-L)
  help          show this help (alias: ?)
  quit          leave (alias: exit)

While a program runs, type a line when it waits for input.
Ctrl-C stops the program.
"""


def tag(name: str, text: str = "") -> str:
    """Colorize a ``[NAME]`` tag using TAG_COLORS."""
    color = ANSI_COLORS.get(TAG_COLORS.get(name, ""), "")
    reset = ANSI_COLORS["reset"] if color else ""
    label = f"{color}[{name}]{reset}"
    return f"{label} {text}" if text else label


@dataclass
class Console:
    """Drives an Engine on behalf of a line-oriented UI."""

    engine: Engine
    config: ConfigModel

    running: bool = False
    last_exit_code: int | None = None
    cwd: str = field(default_factory=os.getcwd)

    # ---- Streaming hooks (wired by UI/CLI) ----
    output_fn: Callable[[str], None] | None = None
    input_fn: Callable[[str], str] | None = None
    sleep_fn: Callable[[float], None] = time.sleep

    _triggers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._triggers = {}
        for action, triggers in COMMANDS.items():
            for trig in triggers:
                self._triggers[trig] = action

    # ---------- config ----------

    @property
    def poll_interval_s(self) -> float:
        ms = self.config.get_path("ui.poll_interval_ms", 100)
        return max(0.0, float(ms)) / 1000.0

    @property
    def input_prompt(self) -> str:
        return str(self.config.get_path("ui.input_prompt", "") or "")

    def command_names(self) -> list[str]:
        return sorted(self._triggers)

    # ---------- lifecycle ----------

    def start(self) -> str:
        self.running = True
        c = ANSI_COLORS
        return (
            f"{c['cyan']}CodeBridge{c['reset']} "
            f"{c['dim']}(type ? for help){c['reset']}\n"
        )

    def prompt(self) -> str:
        text = str(self.config.get_path("ui.prompt", "bridge>") or "bridge>")
        return f"{ANSI_COLORS['pink']}{text}{ANSI_COLORS['reset']}"

    # ---------- commands ----------

    def handle_command(self, line: str) -> str:
        """Execute one REPL line and return text to display."""
        stripped = line.strip()
        if not stripped:
            return ""

        head, _, rest = stripped.partition(" ")
        action = self._triggers.get(head)
        arg = rest.strip()

        if action == "run":
            if not arg:
                return tag("ERR", "usage: run PATH\n")
            return self.run_file(arg)
        if action == "sessions":
            return self._handle_sessions()
        if action == "close":
            if not arg:
                return tag("ERR", "usage: close ID\n")
            self.engine.close(arg)
            return tag("SESSION", f"closed {arg}\n")
        if action == "clear":
            return UI_CLEAR
        if action == "help":
            return HELP_TEXT
        if action == "quit":
            self.running = False
            return "Bye!\n"

        return tag("ERR", f"unknown command: {head} (type ? for help)\n")

    def run_file(self, path: str) -> str:
        target = Path(os.path.expanduser(path))
        if not target.is_absolute():
            target = Path(self.cwd) / target
        try:
            source = target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return tag("ERR", f"cannot read {path}: {e}\n")
        return self.run_source(source, label=path)

    def run_source(self, source: str, label: str = "<source>") -> str:
        """Execute source; attach interactively if it becomes a session."""
        self.emit(tag("RUN", f"{label}\n"))
        self.last_exit_code = None
        try:
            result = self.engine.execute(source)
        except SpawnFailure as e:
            return tag("ERR", f"{e}\n")

        if isinstance(result, DirectResult):
            return self._format_direct(result)
        if isinstance(result, SessionStarted):
            return self.attach(result.session_id)
        return ""

    # ---------- interactive attachment ----------

    def attach(self, session_id: str) -> str:
        """Poll a session until it ends; returns the closing status line."""
        summary = ""
        try:
            while True:
                try:
                    chunks = self.engine.poll_output(session_id)
                except SessionNotFound:
                    summary = tag("SESSION", "ended\n")
                    break

                finished = False
                for chunk in chunks:
                    self.emit(self._format_chunk(chunk))
                    if chunk.is_sentinel:
                        finished = True
                        self.last_exit_code = chunk.exit_code
                if finished:
                    break

                try:
                    status = self.engine.status(session_id)
                except SessionNotFound:
                    summary = tag("SESSION", "ended\n")
                    break

                if status is SessionStatus.AWAITING_INPUT and self.input_fn:
                    try:
                        line = self.input_fn(self.input_prompt)
                    except EOFError:
                        summary = tag("SESSION", "input closed\n")
                        break
                    try:
                        self.engine.send_input(session_id, line)
                    except (ClosedPipe, SessionNotFound):
                        # The run is over; the next poll says how
                        pass
                    continue

                self.sleep_fn(self.poll_interval_s)
        except KeyboardInterrupt:
            summary = tag("SESSION", "interrupted\n")
        finally:
            self.engine.close(session_id)
        return summary

    # ---------- formatting ----------

    def emit(self, text: str) -> None:
        if text and self.output_fn is not None:
            self.output_fn(text)

    def _format_chunk(self, chunk: OutputChunk) -> str:
        c = ANSI_COLORS
        if chunk.is_sentinel:
            return f"{c['dim']}{chunk.text}{c['reset']}"
        if chunk.stream == STREAM_STDERR:
            return f"{c['red']}{chunk.text}{c['reset']}"
        return chunk.text

    def _format_direct(self, result: DirectResult) -> str:
        self.last_exit_code = result.exit_code
        c = ANSI_COLORS
        parts: list[str] = []
        if result.stdout:
            parts.append(result.stdout)
            if not result.stdout.endswith("\n"):
                parts.append("\n")
        if result.stderr:
            parts.append(f"{c['red']}{result.stderr}{c['reset']}")
            if not result.stderr.endswith("\n"):
                parts.append("\n")
        parts.append(tag("EXIT", f"{result.exit_code} ({result.duration_ms}ms)\n"))
        return "".join(parts)

    def _handle_sessions(self) -> str:
        infos = self.engine.list_sessions()
        if not infos:
            return "No sessions.\n"
        headers = ["ID", "PID", "STATUS", "IDLE", "EXIT"]
        rows = [
            [
                info.session_id,
                str(info.pid),
                info.status.value,
                f"{info.idle_s:.1f}s",
                "" if info.exit_code is None else str(info.exit_code),
            ]
            for info in infos
        ]
        widths = [
            max(len(headers[i]), *(len(r[i]) for r in rows))
            for i in range(len(headers))
        ]
        lines = ["  ".join(h.ljust(w) for h, w in zip(headers, widths)).rstrip()]
        lines.append("  ".join("-" * w for w in widths))
        for r in rows:
            lines.append("  ".join(v.ljust(w) for v, w in zip(r, widths)).rstrip())
        return "\n".join(lines) + "\n"
