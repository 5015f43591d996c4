# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""Idle sweeper: force-close sessions the caller abandoned."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from .registry import SessionRegistry

logger = logging.getLogger(__name__)


class IdleSweeper:
    """Background thread that evicts sessions idle past ``idle_timeout_s``."""

    def __init__(
        self,
        registry: SessionRegistry,
        evict: Callable[[str], None],
        idle_timeout_s: float,
        interval_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._evict = evict
        self._idle_timeout_s = idle_timeout_s
        self._interval_s = interval_s
        self._clock = clock
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the sweeper thread. No-op if it is already running."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run, name="codebridge-sweeper", daemon=True
            )
            self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the thread and join it. Idempotent."""
        with self._lock:
            thread = self._thread
            self._thread = None
        self._stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def sweep_once(self) -> list[str]:
        """Evict every idle session now. Returns the evicted ids."""
        now = self._clock()
        evicted: list[str] = []
        for session in self._registry.idle_sessions(now, self._idle_timeout_s):
            try:
                self._evict(session.session_id)
            except Exception:
                # One bad session must not stop the sweep
                logger.exception("evicting session %s failed", session.session_id)
                continue
            evicted.append(session.session_id)
        return evicted

    def _run(self) -> None:
        while not self._stop.wait(self._interval_s):
            evicted = self.sweep_once()
            if evicted:
                logger.info("evicted %d idle session(s): %s", len(evicted), evicted)
