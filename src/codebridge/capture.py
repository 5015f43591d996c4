# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Output capture: drain a child's stdout/stderr without blocking anyone else.

One reader thread per stream reads raw bytes as they arrive, decodes them
incrementally (a multi-byte character split across reads is held back until
complete) and hands text chunks to the owning session. A watcher thread
waits for the process to exit, lets the readers drain, then emits the
completion sentinel. Nothing is emitted after the sentinel.

Within a stream, chunk order is exact. Across stdout and stderr the order is
whatever the two readers observed, which is best-effort.
"""

from __future__ import annotations

import codecs
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from .logs import write_crash_log
from .process import ProcessHandle

logger = logging.getLogger(__name__)

STREAM_STDOUT = "stdout"
STREAM_STDERR = "stderr"
STREAM_EXIT = "exit"

FINISHED_TEXT = "\n[Program finished successfully]\n"
TERMINATED_TEXT = "\n[Program terminated unexpectedly]\n"


def completion_text(exit_code: int) -> str:
    if exit_code == 0:
        return FINISHED_TEXT
    return f"\n[Program exited with code {exit_code}]\n"


@dataclass(frozen=True)
class OutputChunk:
    """A unit of decoded output. ``exit_code`` is set only on the sentinel."""

    stream: str
    text: str
    exit_code: int | None = None

    @property
    def is_sentinel(self) -> bool:
        return self.stream == STREAM_EXIT

    def __str__(self) -> str:
        return self.text


# -----------------------
# Decode anomaly tracking
# -----------------------

REPLACE_ERRORS = "codebridge.replace"
_decode_state = threading.local()


def _replace_and_count(exc: UnicodeError) -> tuple[str, int]:
    """Like errors="replace", but counts hits for the calling thread."""
    if not isinstance(exc, UnicodeDecodeError):
        raise exc
    _decode_state.anomalies = getattr(_decode_state, "anomalies", 0) + 1
    return ("\ufffd", exc.end)


codecs.register_error(REPLACE_ERRORS, _replace_and_count)


class StreamDecoder:
    """Incremental decoder that reports how many invalid sequences it replaced."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(
            errors=REPLACE_ERRORS
        )

    def decode(self, data: bytes, final: bool = False) -> tuple[str, int]:
        _decode_state.anomalies = 0
        text = self._decoder.decode(data, final)
        return text, _decode_state.anomalies


# -----------------------
# Capture
# -----------------------

ChunkSink = Callable[[OutputChunk], None]
FinishCallback = Callable[[int, BaseException | None], None]
AnomalyCallback = Callable[[str, int], None]


class OutputCapture:
    """Background readers for one ProcessHandle."""

    def __init__(
        self,
        handle: ProcessHandle,
        on_chunk: ChunkSink,
        on_finish: FinishCallback,
        on_anomaly: AnomalyCallback | None = None,
        encoding: str = "utf-8",
        chunk_size: int = 4096,
        drain_timeout_s: float = 1.0,
        session_id: str = "",
    ) -> None:
        self._handle = handle
        self._on_chunk = on_chunk
        self._on_finish = on_finish
        self._on_anomaly = on_anomaly
        self._encoding = encoding
        self._chunk_size = chunk_size
        self._drain_timeout_s = drain_timeout_s
        self._session_id = session_id

        self._lock = threading.Lock()
        self._sealed = False
        self._failure: BaseException | None = None
        self._done = threading.Event()
        self._readers: list[threading.Thread] = []
        self._watcher: threading.Thread | None = None

    # ---------- lifecycle ----------

    def start(self) -> None:
        name = self._session_id[:8] or str(self._handle.pid)
        self._readers = [
            threading.Thread(
                target=self._reader,
                args=(STREAM_STDOUT, self._handle.stdout),
                name=f"codebridge-out-{name}",
                daemon=True,
            ),
            threading.Thread(
                target=self._reader,
                args=(STREAM_STDERR, self._handle.stderr),
                name=f"codebridge-err-{name}",
                daemon=True,
            ),
        ]
        self._watcher = threading.Thread(
            target=self._watch, name=f"codebridge-wait-{name}", daemon=True
        )
        for t in self._readers:
            t.start()
        self._watcher.start()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the sentinel was emitted. Returns False on timeout."""
        return self._done.wait(timeout)

    @property
    def failure(self) -> BaseException | None:
        return self._failure

    # ---------- threads ----------

    def _reader(self, stream: str, pipe) -> None:
        decoder = StreamDecoder(self._encoding)
        try:
            while True:
                data = pipe.read(self._chunk_size)
                if not data:
                    break
                self._emit_text(stream, decoder.decode(data))
            self._emit_text(stream, decoder.decode(b"", final=True))
        except Exception as e:
            self._fail(e, f"{stream} reader")
        finally:
            try:
                pipe.close()
            except Exception:
                pass

    def _watch(self) -> None:
        exit_code = -1
        try:
            code = self._handle.wait()
            exit_code = code if code is not None else -1
            for t in self._readers:
                t.join(timeout=self._drain_timeout_s)
                if t.is_alive():
                    logger.debug(
                        "%s still open after exit (pid=%s)",
                        t.name, self._handle.pid,
                    )
        except Exception as e:
            self._fail(e, "exit watcher")
        finally:
            try:
                self._seal(exit_code)
            except Exception:
                logger.exception("sealing output failed (pid=%s)", self._handle.pid)
            finally:
                self._handle.release()
                self._done.set()

    # ---------- helpers ----------

    def _emit_text(self, stream: str, decoded: tuple[str, int]) -> None:
        text, anomalies = decoded
        if anomalies:
            logger.warning(
                "replaced %d invalid byte sequence(s) on %s (pid=%s)",
                anomalies, stream, self._handle.pid,
            )
            if self._on_anomaly is not None:
                self._on_anomaly(stream, anomalies)
        if not text:
            return
        with self._lock:
            if self._sealed:
                return
            self._on_chunk(OutputChunk(stream, text))

    def _seal(self, exit_code: int) -> None:
        with self._lock:
            if self._sealed:
                return
            self._sealed = True
            if self._failure is not None:
                sentinel = OutputChunk(STREAM_EXIT, TERMINATED_TEXT, exit_code)
            else:
                sentinel = OutputChunk(
                    STREAM_EXIT, completion_text(exit_code), exit_code
                )
            # Sentinel is queued before the run is reported finished
            try:
                self._on_chunk(sentinel)
            except Exception:
                logger.exception("could not deliver completion sentinel")
            try:
                self._on_finish(exit_code, self._failure)
            except Exception:
                logger.exception("exit callback failed (pid=%s)", self._handle.pid)

    def _fail(self, error: BaseException, where: str) -> None:
        with self._lock:
            if self._failure is not None:
                return
            self._failure = error
        logger.error(
            "capture failure in %s (pid=%s): %s", where, self._handle.pid, error
        )
        write_crash_log(
            error,
            session_id=self._session_id,
            context=where,
            pid=self._handle.pid,
        )
        try:
            self._handle.kill()
        except Exception:
            logger.exception("could not kill pid=%s", self._handle.pid)
