# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Process handle: one child interpreter and its three pipes.

The handle is the only object that touches the child's pipes. Readers get
the raw stdout/stderr file objects once, at capture start; everyone else
goes through write_stdin(), try_exit_status(), wait() and kill(). Callers
that must not block on a full stdin pipe hand their bytes to a StdinWriter.
"""

from __future__ import annotations

import logging
import os
import queue
import signal
import subprocess
import tempfile
import threading
from datetime import datetime
from typing import IO

from .config import EngineSettings
from .errors import ClosedPipe, SpawnFailure

logger = logging.getLogger(__name__)

_POSIX = os.name == "posix"


class ProcessHandle:
    """Owns one spawned interpreter process."""

    def __init__(
        self,
        proc: subprocess.Popen,
        script_path: str,
        kill_grace_s: float = 1.0,
    ) -> None:
        self._proc = proc
        self._script_path = script_path
        self._kill_grace_s = kill_grace_s
        self._kill_lock = threading.Lock()
        self._released = False
        self.started_at = datetime.now().isoformat()

    # ---------- spawn ----------

    @classmethod
    def spawn(cls, source: str, settings: EngineSettings) -> ProcessHandle:
        """Write ``source`` to a temp file and start the interpreter on it.

        Raises:
            SpawnFailure: the interpreter is missing or unusable.
        """
        fd, script_path = tempfile.mkstemp(
            prefix="codebridge-", suffix=settings.source_suffix
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(source)
        except OSError as e:
            _remove_quietly(script_path)
            raise SpawnFailure(settings.interpreter, str(e)) from e

        argv = [settings.interpreter, *settings.interpreter_args, script_path]

        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                env=_build_env(settings.env),
                # So we can signal the whole process group
                start_new_session=_POSIX,
            )
        except (OSError, ValueError) as e:
            _remove_quietly(script_path)
            raise SpawnFailure(settings.interpreter, str(e)) from e

        logger.debug("spawned pid=%s argv=%s", proc.pid, argv)
        return cls(proc, script_path, kill_grace_s=settings.kill_grace_s)

    # ---------- accessors ----------

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def stdout(self) -> IO[bytes]:
        assert self._proc.stdout is not None
        return self._proc.stdout

    @property
    def stderr(self) -> IO[bytes]:
        assert self._proc.stderr is not None
        return self._proc.stderr

    # ---------- primitives ----------

    def try_exit_status(self) -> int | None:
        """Non-blocking liveness check. None while the process runs."""
        return self._proc.poll()

    def wait(self, timeout: float | None = None) -> int | None:
        """Wait for exit; returns the exit code, or None on timeout."""
        try:
            return self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def write_stdin(self, data: bytes) -> None:
        """Write all of ``data`` to the child's stdin and flush.

        Raises:
            ClosedPipe: the process exited or stopped reading stdin.
        """
        if self._proc.poll() is not None:
            raise ClosedPipe()
        pipe = self._proc.stdin
        if pipe is None or pipe.closed:
            raise ClosedPipe("Process stdin is closed")
        view = memoryview(data)
        try:
            while view:
                written = pipe.write(view)
                if written is None:
                    written = 0
                view = view[written:]
            pipe.flush()
        except (BrokenPipeError, ValueError, OSError) as e:
            raise ClosedPipe(f"Process stdin is closed: {e}") from e

    def kill(self) -> int | None:
        """Terminate the process group and reap it. Idempotent.

        Returns the exit code once reaped (None only if reaping failed).
        """
        with self._kill_lock:
            if self._proc.poll() is None:
                self._signal(signal.SIGTERM)
                if self.wait(self._kill_grace_s) is None:
                    self._signal(signal.SIGKILL if _POSIX else signal.SIGTERM)
                    self.wait(self._kill_grace_s)
            self._close_stdin()
            self.release()
            return self._proc.returncode

    def release(self) -> None:
        """Remove the temp script. Safe to call repeatedly."""
        if self._released:
            return
        self._released = True
        _remove_quietly(self._script_path)

    # ---------- internals ----------

    def _signal(self, sig: int) -> None:
        if _POSIX:
            try:
                os.killpg(self._proc.pid, sig)
                return
            except (ProcessLookupError, PermissionError):
                pass
        try:
            if sig == signal.SIGTERM:
                self._proc.terminate()
            else:
                self._proc.kill()
        except ProcessLookupError:
            pass

    def _close_stdin(self) -> None:
        pipe = self._proc.stdin
        if pipe is None or pipe.closed:
            return
        try:
            pipe.close()
        except OSError:
            # Unflushed data to a dead reader
            pass


class StdinWriter:
    """Feeds a handle's stdin from a queue on its own thread.

    ``submit`` only enqueues, so a child that never reads stdin can fill the
    pipe without stalling the caller. The thread starts on first use and
    ends once stopped or once the pipe breaks.
    """

    def __init__(self, handle: ProcessHandle, name: str = "") -> None:
        self._handle = handle
        self._name = name or str(handle.pid)
        self._queue: queue.Queue[bytes | None] = queue.Queue()
        self._broken = threading.Event()
        self._state_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stopped = False

    def submit(self, data: bytes) -> None:
        """Queue ``data`` for the child's stdin.

        Raises:
            ClosedPipe: an earlier write failed or the writer was stopped.
        """
        if self._broken.is_set():
            raise ClosedPipe()
        with self._state_lock:
            if self._stopped:
                raise ClosedPipe("Process stdin is closed")
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._run,
                    name=f"codebridge-in-{self._name}",
                    daemon=True,
                )
                self._thread.start()
            self._queue.put(data)

    def stop(self) -> None:
        """Let the thread finish. Pending data is dropped if the pipe is gone."""
        with self._state_lock:
            if self._stopped:
                return
            self._stopped = True
            if self._thread is not None:
                self._queue.put(None)

    def _run(self) -> None:
        while True:
            data = self._queue.get()
            if data is None:
                return
            try:
                self._handle.write_stdin(data)
            except ClosedPipe as e:
                logger.debug("stdin writer for pid=%s done: %s", self._handle.pid, e)
                self._broken.set()
                return


def _build_env(extra: dict[str, str]) -> dict[str, str]:
    env = os.environ.copy()
    env.update(extra)
    return env


def _remove_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.debug("could not remove %s", path, exc_info=True)
