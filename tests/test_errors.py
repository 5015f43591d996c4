from __future__ import annotations

import pytest

from codebridge.errors import BridgeError, ClosedPipe, SessionNotFound, SpawnFailure


def test_spawn_failure_carries_interpreter_and_reason() -> None:
    err = SpawnFailure("python9", "No such file or directory")

    assert isinstance(err, BridgeError)
    assert err.interpreter == "python9"
    assert err.reason == "No such file or directory"
    assert "python9" in str(err)


def test_session_not_found_reads_as_key_error_without_quotes() -> None:
    err = SessionNotFound("abc123")

    assert isinstance(err, KeyError)
    assert isinstance(err, BridgeError)
    assert err.session_id == "abc123"
    assert str(err) == "Session not found: abc123"

    with pytest.raises(KeyError):
        raise err


def test_closed_pipe_is_a_broken_pipe() -> None:
    err = ClosedPipe()

    assert isinstance(err, BrokenPipeError)
    assert isinstance(err, BridgeError)
    assert str(err) == "Process has already exited"
