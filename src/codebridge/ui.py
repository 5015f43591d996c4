# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
prompt_toolkit front end for the console.

Command lines are read with a completing PromptSession; lines typed while a
program runs go through a second, plain PromptSession so program input never
lands in command history. Program output is printed above the prompt.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import clear as pt_clear
from prompt_toolkit.shortcuts import print_formatted_text
from prompt_toolkit.styles import Style

if TYPE_CHECKING:
    from .console import Console  # pragma: no cover

DEFAULT_STYLE: dict[str, str] = {
    "completion-menu": "bg:#1c1c1c #c6c6c6",
    "completion-menu.completion": "bg:#1c1c1c #c6c6c6",
    "completion-menu.completion.current": "bg:#3a3a3a #ffffff bold",
    "completion-menu.meta.completion": "bg:#1c1c1c #767676",
    "completion-menu.meta.completion.current": "bg:#3a3a3a #9e9e9e",
    "bottom-toolbar": "bg:#262626 #8a8a8a",
    "bottom-toolbar.live": "bg:#262626 #d7af00",
}


# ----------------------------
# Config lookups
# ----------------------------


def _cfg(console: Console | None, path: str, default):
    if console is None:
        return default
    try:
        return console.config.get_path(path, default)
    except Exception:
        return default


def _build_style(console: Console | None) -> Style:
    rules = dict(DEFAULT_STYLE)
    overrides = _cfg(console, "ui.theme.style", {})
    if isinstance(overrides, dict):
        rules.update(
            (k, v)
            for k, v in overrides.items()
            if isinstance(k, str) and isinstance(v, str)
        )
    return Style.from_dict(rules)


# ----------------------------
# Completion
# ----------------------------


class PathCompleter(Completer):
    """Completes directories and program files for ``run PATH``.

    Only files ending in ``suffix`` are offered; ``suffix=""`` offers all.
    """

    def __init__(self, suffix: str = ".py") -> None:
        self.suffix = suffix

    def _entries(self, directory: str) -> list[tuple[str, bool]]:
        try:
            names = sorted(os.listdir(directory))
        except OSError:
            return []
        entries = []
        for name in names:
            is_dir = os.path.isdir(os.path.join(directory, name))
            if is_dir or not self.suffix or name.endswith(self.suffix):
                entries.append((name, is_dir))
        return entries

    def complete_token(self, token: str) -> Iterable[Completion]:
        expanded = os.path.expanduser(token)
        if not token:
            directory, stem, lead = ".", "", ""
        elif expanded.endswith(("/", os.sep)):
            directory, stem, lead = expanded, "", token
        else:
            directory = os.path.dirname(expanded) or "."
            stem = os.path.basename(expanded)
            lead = os.path.dirname(token)
            if lead and not lead.endswith("/"):
                lead += "/"

        for name, is_dir in self._entries(directory):
            if name.startswith(stem):
                yield Completion(
                    lead + name + ("/" if is_dir else ""),
                    start_position=-len(token),
                    display_meta="dir" if is_dir else "program",
                )

    def get_completions(self, document, complete_event) -> Iterable[Completion]:
        _, sep, arg = (document.text_before_cursor or "").lstrip().partition(" ")
        if sep:
            yield from self.complete_token(arg.lstrip())


class ConsoleCompleter(Completer):
    """Command names first; program paths after ``run``; session ids after ``close``."""

    def __init__(self, console: Console | None) -> None:
        self.console = console
        suffix = _cfg(console, "engine.source_suffix", ".py")
        self._paths = PathCompleter(suffix if isinstance(suffix, str) else ".py")

    def _session_ids(self) -> list[str]:
        if self.console is None:
            return []
        return [info.session_id for info in self.console.engine.list_sessions()]

    def get_completions(self, document, complete_event) -> Iterable[Completion]:
        before = (document.text_before_cursor or "").lstrip()
        head, sep, arg = before.partition(" ")

        if not sep:
            names = self.console.command_names() if self.console else []
            for name in names:
                if name.startswith(head):
                    yield Completion(name, start_position=-len(head))
            return

        if head in ("run", "r"):
            yield from self._paths.get_completions(document, complete_event)
        elif head == "close":
            arg = arg.lstrip()
            for sid in self._session_ids():
                if sid.startswith(arg):
                    yield Completion(sid, start_position=-len(arg))


# ----------------------------
# PromptSession UI
# ----------------------------


class PromptToolkitUI:
    """
    Line UI on top of prompt_toolkit:
      - normal terminal scrollback (no full-screen app)
      - command and path completion, live-session toolbar
      - program output printed above the prompt (patch_stdout)
      - Ctrl+L clears the screen
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console
        self.session: PromptSession[str] | None = None
        self._input_session: PromptSession[str] | None = None
        self._style = _build_style(console)
        self._mid_line = False

    def _toolbar(self):
        if self.console is None:
            return None
        live = [i for i in self.console.engine.list_sessions() if i.status.is_live]
        if not live:
            return [("class:bottom-toolbar", " no running programs ")]
        return [("class:bottom-toolbar.live", f" {len(live)} running: ps to list ")]

    def _ensure_session(self) -> PromptSession[str]:
        if self.session is None:
            self.session = PromptSession(
                key_bindings=self.build_key_bindings(),
                completer=ConsoleCompleter(self.console),
                complete_while_typing=True,
                bottom_toolbar=self._toolbar,
                style=self._style,
            )
        return self.session

    def _end_partial_line(self) -> None:
        if self._mid_line:
            print_formatted_text(ANSI("\n"), style=self._style, end="")
            self._mid_line = False

    # ---------- public API ----------

    def read(self, prompt: str) -> str:
        """Read one console command."""
        session = self._ensure_session()
        self._end_partial_line()
        with patch_stdout():
            return session.prompt(ANSI(prompt + " "))

    def read_input(self, prompt: str = "") -> str:
        """Read one line for a running program.

        Stays on the program's own prompt line, so no newline is forced.
        """
        if self._input_session is None:
            self._input_session = PromptSession(style=self._style)
        self._mid_line = False
        with patch_stdout():
            return self._input_session.prompt(ANSI(prompt))

    def write(self, text: str) -> None:
        """Print ``text`` verbatim; ANSI escapes are honored."""
        if not text:
            return
        print_formatted_text(ANSI(text), style=self._style, end="")
        self._mid_line = not text.endswith("\n")

    def clear(self) -> None:
        pt_clear()

    def build_key_bindings(self) -> KeyBindings:
        kb = KeyBindings()

        @kb.add("c-l")
        def _(event):
            try:
                event.app.renderer.clear()
            except Exception:
                pass
            event.app.invalidate()

        return kb
