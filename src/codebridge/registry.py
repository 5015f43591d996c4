# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Session registry: the process-wide table of live interactive sessions.

The map is the only globally shared mutable structure in the engine and is
guarded by a single lock. Sessions guard their own internals, so lookups
never hold the registry lock while touching a session.
"""

from __future__ import annotations

import threading

from .errors import SessionNotFound
from .session import ExecutionSession


class SessionRegistry:
    """Thread-safe in-memory registry of ExecutionSessions."""

    def __init__(self) -> None:
        self._sessions: dict[str, ExecutionSession] = {}
        self._lock = threading.Lock()

    def add(self, session: ExecutionSession) -> None:
        with self._lock:
            self._sessions[session.session_id] = session

    def find(self, session_id: str) -> ExecutionSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def get(self, session_id: str) -> ExecutionSession:
        """Look up a session.

        Raises:
            SessionNotFound: unknown or already removed id.
        """
        session = self.find(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def remove(self, session_id: str) -> ExecutionSession | None:
        """Remove and return a session, or None if it was not registered."""
        with self._lock:
            return self._sessions.pop(session_id, None)

    def list_sessions(self) -> list[ExecutionSession]:
        """Return all registered sessions (newest first)."""
        with self._lock:
            sessions = list(self._sessions.values())
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)

    def idle_sessions(self, now: float, idle_timeout_s: float) -> list[ExecutionSession]:
        """Sessions with no caller activity for longer than ``idle_timeout_s``."""
        with self._lock:
            sessions = list(self._sessions.values())
        return [s for s in sessions if s.idle_for(now) > idle_timeout_s]

    def drain(self) -> list[ExecutionSession]:
        """Remove every session and return them."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        return sessions
