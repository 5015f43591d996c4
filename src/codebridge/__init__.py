# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
CodeBridge core package.

Runs short, user-authored programs as child processes and lets a UI that
can only make short non-blocking calls drive them: ``execute`` either
returns the finished result or a session id to poll, feed input to, and
close.
"""
from .capture import OutputChunk as OutputChunk  # noqa: F401 (re-export)
from .config import EngineSettings as EngineSettings  # noqa: F401
from .engine import DirectResult as DirectResult  # noqa: F401
from .engine import ExecutionEngine as ExecutionEngine  # noqa: F401
from .engine import SessionStarted as SessionStarted  # noqa: F401
from .errors import BridgeError as BridgeError  # noqa: F401
from .errors import ClosedPipe as ClosedPipe  # noqa: F401
from .errors import SessionNotFound as SessionNotFound  # noqa: F401
from .errors import SpawnFailure as SpawnFailure  # noqa: F401
from .session import SessionStatus as SessionStatus  # noqa: F401

__version__ = "0.1.0"
