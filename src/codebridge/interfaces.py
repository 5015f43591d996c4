# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Protocol definitions for dependency injection.

Front ends (the terminal console, or any UI layer embedding the bridge)
depend on these contracts rather than on ExecutionEngine directly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .capture import OutputChunk  # pragma: no cover
    from .engine import ExecuteResult  # pragma: no cover
    from .session import SessionInfo, SessionStatus  # pragma: no cover


class Engine(Protocol):
    """Protocol for the execution bridge consumed by UI layers."""

    def execute(self, source: str) -> ExecuteResult:
        """Run source; DirectResult if it finished in the grace window,
        otherwise SessionStarted."""
        ...

    def poll_output(self, session_id: str) -> list[OutputChunk]:
        """Drain output produced since the last poll (may be empty)."""
        ...

    def is_running(self, session_id: str) -> bool:
        """True while the program is alive."""
        ...

    def status(self, session_id: str) -> SessionStatus:
        """Current status including the awaiting-input hint."""
        ...

    def send_input(self, session_id: str, text: str) -> None:
        """Send one line of input to the program."""
        ...

    def close(self, session_id: str) -> None:
        """Stop the program and forget the session. Always succeeds."""
        ...

    def list_sessions(self) -> list[SessionInfo]:
        """Snapshot of registered sessions."""
        ...


class ConfigModel(Protocol):
    """Protocol for configuration access."""

    @property
    def engine(self) -> dict[str, Any]:
        """Engine configuration."""
        ...

    @property
    def ui(self) -> dict[str, Any]:
        """Front-end configuration."""
        ...

    def get_path(self, path: str, default: Any = None) -> Any:
        """Dot-separated nested lookup."""
        ...
