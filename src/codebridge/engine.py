# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Execution engine: the dispatcher and the poll/input API.

``execute(source)`` spawns the program and waits up to the grace window.
A run that finishes inside the window comes back as a DirectResult and
never touches the registry. Anything still running becomes a session: its
id is returned and the caller drives it with short, non-blocking calls::

    with ExecutionEngine() as engine:
        result = engine.execute(source)
        if isinstance(result, SessionStarted):
            chunks = engine.poll_output(result.session_id)
            engine.send_input(result.session_id, "Bob")
            ...
            engine.close(result.session_id)

None of the public calls block on the child. All blocking reads happen in
the capture threads; ``execute`` only waits for the bounded grace window and
``close`` for the bounded kill grace.

Telling "waits for input" from "slow but finite" up front is undecidable,
so the classification is a timing probe. A slow program that is classified
interactive simply finishes later as a completed session.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .capture import STREAM_STDERR, STREAM_STDOUT, OutputChunk
from .config import EngineSettings, load_engine_settings
from .errors import BridgeError, SessionNotFound
from .registry import SessionRegistry
from .session import ExecutionSession, SessionInfo, SessionStatus
from .sweeper import IdleSweeper

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectResult:
    """A run that finished inside the grace window."""

    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    started_at: str


@dataclass(frozen=True)
class SessionStarted:
    """A run that outlived the grace window; poll it by ``session_id``."""

    session_id: str


ExecuteResult = DirectResult | SessionStarted


class ExecutionEngine:
    """Runs programs and owns every interactive session it creates.

    The session table starts empty and lives as long as the engine;
    ``shutdown()`` (or leaving the ``with`` block) kills and removes every
    session still registered.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
        **overrides: Any,
    ) -> None:
        if settings is None:
            settings = load_engine_settings(**overrides)
        elif overrides:
            settings = settings.with_overrides(**overrides)
        self.settings = settings
        self._clock = clock
        self._registry = SessionRegistry()
        self._sweeper = IdleSweeper(
            self._registry,
            self._evict,
            idle_timeout_s=settings.idle_timeout_s,
            interval_s=settings.sweep_interval_s,
            clock=clock,
        )
        self._tombstones: OrderedDict[str, None] = OrderedDict()
        self._tomb_lock = threading.Lock()
        self._closed = False

    # ---------- dispatcher ----------

    def execute(self, source: str) -> ExecuteResult:
        """Run ``source`` and classify it as direct or interactive.

        Raises:
            SpawnFailure: the interpreter could not be started.
            BridgeError: the engine was shut down.
        """
        if self._closed:
            raise BridgeError("Engine is shut down")

        start_ts = time.monotonic()
        session = ExecutionSession.start(source, self.settings, clock=self._clock)

        if session.wait_finished(self.settings.grace_window_s):
            chunks = session.drain()
            session.close()
            duration_ms = int((time.monotonic() - start_ts) * 1000)
            logger.debug(
                "direct run pid=%s exit=%s in %dms",
                session.pid, session.exit_code, duration_ms,
            )
            return DirectResult(
                stdout=_join(chunks, STREAM_STDOUT),
                stderr=_join(chunks, STREAM_STDERR),
                exit_code=session.exit_code if session.exit_code is not None else -1,
                duration_ms=duration_ms,
                started_at=session.started_at,
            )

        self._registry.add(session)
        if self._closed:
            # Lost a race with shutdown()
            self._registry.remove(session.session_id)
            session.close()
            raise BridgeError("Engine is shut down")
        self._sweeper.start()
        logger.debug(
            "interactive session %s pid=%s", session.session_id, session.pid
        )
        return SessionStarted(session_id=session.session_id)

    # ---------- poll / input API ----------

    def poll_output(self, session_id: str) -> list[OutputChunk]:
        """Return (and remove) everything produced since the last poll.

        Never waits for new output; an empty list means "nothing yet".

        Raises:
            SessionNotFound: unknown, evicted or closed id.
        """
        return self._registry.get(session_id).poll()

    def is_running(self, session_id: str) -> bool:
        """True while the process is alive (running or awaiting input).

        Sessions force-closed by the idle sweeper report False.

        Raises:
            SessionNotFound: unknown or explicitly closed id.
        """
        session = self._registry.find(session_id)
        if session is not None:
            return session.is_running()
        with self._tomb_lock:
            if session_id in self._tombstones:
                return False
        raise SessionNotFound(session_id)

    def status(self, session_id: str) -> SessionStatus:
        """Current status, including the awaiting-input hint.

        Raises:
            SessionNotFound: unknown, evicted or closed id.
        """
        return self._registry.get(session_id).status

    def send_input(self, session_id: str, text: str) -> None:
        """Send one line (a newline is appended) to the program's stdin.

        Raises:
            SessionNotFound: unknown, evicted or closed id.
            ClosedPipe: the process already exited.
        """
        self._registry.get(session_id).send_input(text)

    def close(self, session_id: str) -> None:
        """Kill the program if alive and forget the session. Idempotent."""
        with self._tomb_lock:
            self._tombstones.pop(session_id, None)
        session = self._registry.remove(session_id)
        if session is None:
            return
        session.close()
        logger.debug("closed session %s", session_id)

    def list_sessions(self) -> list[SessionInfo]:
        return [s.info() for s in self._registry.list_sessions()]

    # ---------- lifecycle ----------

    def sweep_idle(self) -> list[str]:
        """Run one idle sweep now. Returns the evicted ids."""
        return self._sweeper.sweep_once()

    def shutdown(self) -> None:
        """Stop the sweeper, then kill and remove every session."""
        self._closed = True
        self._sweeper.stop()
        sessions = self._registry.drain()
        for session in sessions:
            try:
                session.close()
            except Exception:
                logger.exception("closing session %s failed", session.session_id)
        if sessions:
            logger.debug("shutdown closed %d session(s)", len(sessions))

    def __enter__(self) -> ExecutionEngine:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ---------- internals ----------

    def _evict(self, session_id: str) -> None:
        # Tombstone before removal; is_running checks the registry first
        with self._tomb_lock:
            self._tombstones[session_id] = None
            while len(self._tombstones) > self.settings.max_tombstones:
                self._tombstones.popitem(last=False)
        session = self._registry.remove(session_id)
        if session is None:
            with self._tomb_lock:
                self._tombstones.pop(session_id, None)
            return
        session.close()
        logger.info("evicted idle session %s (pid=%s)", session_id, session.pid)


def _join(chunks: list[OutputChunk], stream: str) -> str:
    return "".join(c.text for c in chunks if c.stream == stream)
