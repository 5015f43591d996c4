# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
CodeBridge CLI entry point and REPL loop.

Design:
- CLI owns process startup: logging, config, engine lifetime.
- Console is the command engine (engine + config injected).
- UI is terminal-friendly PromptSession (keeps scrollback + copy/select).

Usage:
  codebridge            start the REPL
  codebridge FILE       run FILE, attach to it, exit with its status
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable

from . import config
from .console import Console
from .engine import ExecutionEngine
from .logs import configure_logging, write_crash_log
from .ui import PromptToolkitUI

USAGE = "usage: codebridge [FILE]\n"


def run_repl(
    console: Console,
    ui: PromptToolkitUI | None = None,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
) -> None:
    """Run the standard CodeBridge REPL loop."""

    def _write(text: str) -> None:
        if ui is not None:
            ui.write(text)
        else:
            output_fn(text)

    while console.running:
        try:
            prompt = console.prompt()
            if ui is not None:
                line = ui.read(prompt)
            else:
                line = input_fn(prompt + " ")

            line = (line or "").strip()
            if not line:
                continue

            try:
                response = console.handle_command(line)
                if response == config.UI_CLEAR:
                    if ui is not None:
                        ui.clear()
                    else:
                        output_fn("\033[2J\033[H")
                    continue
                if response:
                    _write(response)
            except Exception as e:
                # Unhandled exception - write crash log, keep the session
                write_crash_log(e, context=f"command={line}")
                _write(f"[ERROR] Unhandled exception: {type(e).__name__}: {e}\n")

        except (KeyboardInterrupt, EOFError):
            _write("\nBye!\n")
            break


def _build_ui(console: Console) -> PromptToolkitUI | None:
    if os.environ.get("CODEBRIDGE_LEGACY_UI") == "1":
        console.output_fn = lambda s: print(s, end="", flush=True)
        console.input_fn = input
        return None
    ui = PromptToolkitUI(console)
    console.output_fn = ui.write
    console.input_fn = ui.read_input
    return ui


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CodeBridge CLI."""
    args = list(sys.argv[1:] if argv is None else argv)
    if args and args[0] in ("-h", "--help"):
        print(USAGE, end="")
        return 0
    if len(args) > 1:
        print(USAGE, end="", file=sys.stderr)
        return 2

    configure_logging()
    cfg = config.load_config()
    settings = config.load_engine_settings(cfg)

    with ExecutionEngine(settings) as engine:
        console = Console(engine=engine, config=cfg)
        ui = _build_ui(console)

        if args:
            result = console.run_file(args[0])
            if result:
                console.emit(result)
            code = console.last_exit_code
            return code if code is not None and 0 <= code <= 255 else 1

        start_output = console.start()
        if ui is not None:
            ui.write(start_output)
            run_repl(console, ui=ui)
        else:
            print(start_output, end="")
            run_repl(console)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
