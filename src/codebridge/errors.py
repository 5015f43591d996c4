# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Error taxonomy for the execution bridge.

Only engine-level conditions are exceptions. A child program that exits
non-zero or crashes is ordinary completion data, never an error here.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all CodeBridge errors."""


class SpawnFailure(BridgeError):
    """The interpreter could not be started. No session was created."""

    def __init__(self, interpreter: str, reason: str):
        super().__init__(f"Failed to start {interpreter!r}: {reason}")
        self.interpreter = interpreter
        self.reason = reason


class SessionNotFound(BridgeError, KeyError):
    """Unknown, expired or closed session id. The run is over."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id

    def __str__(self) -> str:
        # KeyError would repr() the message
        return str(self.args[0])


class ClosedPipe(BridgeError, BrokenPipeError):
    """Input was sent after the process stopped reading. The run is over."""

    def __init__(self, message: str = "Process has already exited"):
        super().__init__(message)
