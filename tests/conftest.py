from __future__ import annotations

import sys
from pathlib import Path

import pytest

from codebridge.config import EngineSettings


@pytest.fixture(autouse=True)
def data_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep crash logs and user config out of the real home directory."""
    data = tmp_path / "codebridge_data_home"
    data.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("CODEBRIDGE_DATA_HOME", str(data))
    return data


@pytest.fixture
def settings() -> EngineSettings:
    """Engine settings that run children with the test interpreter."""
    return EngineSettings(
        interpreter=sys.executable,
        interpreter_args=("-u",),
        env={"PYTHONUNBUFFERED": "1", "PYTHONIOENCODING": "utf-8"},
        grace_window_ms=5000,
        idle_timeout_s=60.0,
        sweep_interval_s=0.05,
        awaiting_input_after_ms=200,
        kill_grace_s=1.0,
        drain_timeout_s=1.0,
    )
