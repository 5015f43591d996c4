# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
ExecutionSession: one spawned program instance and its output queue.

A session exclusively owns one ProcessHandle and one OutputCapture. Status
is derived on read from a few facts recorded under the session lock:
closed, finished (exit observed, sentinel queued), failure, and the time of
the last output or input. ``AWAITING_INPUT`` is only a display hint
("alive and silent for a while"); nothing depends on it for correctness.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from uuid import uuid4

from .capture import OutputCapture, OutputChunk
from .config import EngineSettings
from .errors import ClosedPipe
from .process import ProcessHandle, StdinWriter

Clock = Callable[[], float]


class SessionStatus(str, Enum):
    RUNNING = "running"
    AWAITING_INPUT = "awaiting_input"
    COMPLETED = "completed"
    FAILED = "failed"
    CLOSED = "closed"

    @property
    def is_live(self) -> bool:
        return self in (SessionStatus.RUNNING, SessionStatus.AWAITING_INPUT)


@dataclass(frozen=True)
class SessionInfo:
    """Read-only snapshot for listings."""

    session_id: str
    status: SessionStatus
    pid: int
    started_at: str
    idle_s: float
    exit_code: int | None


class ExecutionSession:
    """One interpreter run, from spawn to close."""

    def __init__(
        self,
        handle: ProcessHandle,
        settings: EngineSettings,
        session_id: str | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.session_id = session_id or uuid4().hex
        self._handle = handle
        self._settings = settings
        self._clock = clock

        # Guards the queue and the status facts
        self._lock = threading.Lock()

        self._queue: list[OutputChunk] = []
        self._finished = False
        self._closed = False

        now = clock()
        self.created_at = now
        self.last_activity_at = now
        self.last_output_at = now
        self.last_input_at = now
        self.started_at = handle.started_at

        self.exit_code: int | None = None
        self.error: BaseException | None = None
        self.decode_anomalies = 0

        self._capture = OutputCapture(
            handle,
            on_chunk=self._append,
            on_finish=self._on_finish,
            on_anomaly=self._on_anomaly,
            encoding=settings.encoding,
            chunk_size=settings.read_chunk_size,
            drain_timeout_s=settings.drain_timeout_s,
            session_id=self.session_id,
        )
        self._writer = StdinWriter(handle, name=self.session_id[:8])

    @classmethod
    def start(
        cls,
        source: str,
        settings: EngineSettings,
        clock: Clock = time.monotonic,
    ) -> ExecutionSession:
        """Spawn the interpreter on ``source`` and start capturing.

        Raises:
            SpawnFailure: the interpreter could not be started.
        """
        handle = ProcessHandle.spawn(source, settings)
        session = cls(handle, settings, clock=clock)
        session._capture.start()
        return session

    # ---------- status ----------

    @property
    def pid(self) -> int:
        return self._handle.pid

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            if self._closed:
                return SessionStatus.CLOSED
            if self._finished:
                if self._capture.failure is not None:
                    return SessionStatus.FAILED
                return SessionStatus.COMPLETED
            quiet_since = max(self.last_output_at, self.last_input_at)
            if self._clock() - quiet_since >= self._settings.awaiting_input_after_s:
                return SessionStatus.AWAITING_INPUT
            return SessionStatus.RUNNING

    def is_running(self) -> bool:
        return self.status.is_live

    def wait_finished(self, timeout: float | None = None) -> bool:
        """Wait until exit was observed and the sentinel queued."""
        return self._capture.wait(timeout)

    def idle_for(self, now: float | None = None) -> float:
        current = self._clock() if now is None else now
        with self._lock:
            return current - self.last_activity_at

    def info(self) -> SessionInfo:
        status = self.status
        return SessionInfo(
            session_id=self.session_id,
            status=status,
            pid=self.pid,
            started_at=self.started_at,
            idle_s=round(self.idle_for(), 3),
            exit_code=self.exit_code,
        )

    # ---------- caller operations ----------

    def drain(self) -> list[OutputChunk]:
        """Swap the queue for an empty one and return what was in it."""
        with self._lock:
            chunks, self._queue = self._queue, []
            return chunks

    def poll(self) -> list[OutputChunk]:
        """Caller-facing drain; counts as activity."""
        with self._lock:
            self.last_activity_at = self._clock()
            chunks, self._queue = self._queue, []
            return chunks

    def send_input(self, text: str) -> None:
        """Queue ``text`` plus a newline for the child's stdin.

        Returns without waiting for the child to read it.

        Raises:
            ClosedPipe: the process exited or the session was closed.
        """
        data = (text + "\n").encode(self._settings.encoding, errors="replace")
        with self._lock:
            now = self._clock()
            self.last_activity_at = now
            self.last_input_at = now
            if self._closed:
                raise ClosedPipe("Session is closed")
        if self._handle.try_exit_status() is not None:
            raise ClosedPipe()
        self._writer.submit(data)

    def close(self) -> None:
        """Kill the process if alive and discard buffered output. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._handle.kill()
        self._writer.stop()
        with self._lock:
            self._queue.clear()

    # ---------- capture callbacks ----------

    def _append(self, chunk: OutputChunk) -> None:
        with self._lock:
            if self._closed:
                return
            self._queue.append(chunk)
            self.last_output_at = self._clock()
            if chunk.is_sentinel:
                # Finished and sentinel become visible together
                self.exit_code = chunk.exit_code
                self._finished = True

    def _on_finish(self, exit_code: int, error: BaseException | None) -> None:
        with self._lock:
            self.exit_code = exit_code
            self.error = error
            self._finished = True

    def _on_anomaly(self, stream: str, count: int) -> None:
        with self._lock:
            self.decode_anomalies += count
