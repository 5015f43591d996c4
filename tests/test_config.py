from __future__ import annotations

import os
from pathlib import Path

import pytest

from codebridge import config


@pytest.fixture
def tmp_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "home"
    home.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("HOME", str(home))
    return home


def write_user_config(data_root: Path, text: str) -> Path:
    path = config.user_config_path(data_root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# ----------------------------------------------------------------
# Data root
# ----------------------------------------------------------------


def test_get_data_root_prefers_codebridge_data_home(data_home: Path) -> None:
    """
    CODEBRIDGE_DATA_HOME wins when present.
    """
    assert config.get_data_root() == data_home


def test_get_data_root_defaults_to_local_share_and_ignores_xdg(
    tmp_home: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """
    If CODEBRIDGE_DATA_HOME is not set:
    - ignore XDG_DATA_HOME
    - default to ~/.local/share
    """
    monkeypatch.delenv("CODEBRIDGE_DATA_HOME", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_home / "xdg_should_be_ignored"))

    expected = Path(os.path.expanduser("~")) / ".local" / "share"
    assert config.get_data_root() == expected


def test_user_config_path_is_under_data_root(data_home: Path) -> None:
    assert (
        config.user_config_path(data_home)
        == data_home / "codebridge" / "config.yaml"
    )


# ----------------------------------------------------------------
# YAML loading
# ----------------------------------------------------------------


def test_packaged_defaults_define_engine_and_ui_sections() -> None:
    data = config.load_defaults_yaml()

    assert data["engine"]["grace_window_ms"] > 0
    assert data["engine"]["idle_timeout_s"] > 0
    assert data["engine"]["interpreter"]
    assert data["ui"]["poll_interval_ms"] > 0


def test_load_defaults_yaml_missing_file_raises() -> None:
    with pytest.raises(FileNotFoundError):
        config.load_defaults_yaml("does-not-exist.yaml")


def test_load_config_without_user_file_uses_defaults(data_home: Path) -> None:
    cfg = config.load_config(data_home)
    defaults = config.load_defaults_yaml()

    assert cfg.engine == defaults["engine"]
    assert cfg.ui == defaults["ui"]


def test_load_config_merges_user_file_over_defaults(data_home: Path) -> None:
    write_user_config(
        data_home,
        "engine:\n  grace_window_ms: 1500\nui:\n  prompt: 'py>'\n",
    )

    cfg = config.load_config(data_home)

    assert cfg.engine["grace_window_ms"] == 1500
    # untouched keys survive the merge
    assert cfg.engine["idle_timeout_s"] == config.load_defaults_yaml()["engine"]["idle_timeout_s"]
    assert cfg.get_path("ui.prompt") == "py>"


def test_load_config_rejects_non_mapping_user_file(data_home: Path) -> None:
    write_user_config(data_home, "- just\n- a list\n")

    with pytest.raises(ValueError):
        config.load_config(data_home)


def test_deep_merge_is_recursive_and_non_destructive() -> None:
    base = {"a": {"b": 1, "c": 2}, "d": 3}
    merged = config.deep_merge(base, {"a": {"c": 20}, "e": 5})

    assert merged == {"a": {"b": 1, "c": 20}, "d": 3, "e": 5}
    assert base == {"a": {"b": 1, "c": 2}, "d": 3}


# ----------------------------------------------------------------
# YAMLConfig
# ----------------------------------------------------------------


def test_yaml_config_get_path_nested_and_missing() -> None:
    cfg = config.YAMLConfig({"ui": {"theme": {"style": {"x": "y"}}}})

    assert cfg.get_path("ui.theme.style") == {"x": "y"}
    assert cfg.get_path("ui.theme.missing", "dflt") == "dflt"
    assert cfg.get_path("ui.theme.style.x.deeper", 7) == 7
    assert cfg.get_path("", "empty") == "empty"


def test_yaml_config_sections_tolerate_bad_types() -> None:
    cfg = config.YAMLConfig({"engine": "nope", "ui": ["also", "nope"]})

    assert cfg.engine == {}
    assert cfg.ui == {}


# ----------------------------------------------------------------
# EngineSettings
# ----------------------------------------------------------------


def test_engine_settings_from_mapping_converts_and_ignores_unknown() -> None:
    settings = config.EngineSettings.from_mapping(
        {
            "interpreter": "python3",
            "interpreter_args": ["-u", "-X", "utf8"],
            "env": {"A": 1},
            "grace_window_ms": 750,
            "not_a_setting": True,
        }
    )

    assert settings.interpreter_args == ("-u", "-X", "utf8")
    assert settings.env == {"A": "1"}
    assert settings.grace_window_ms == 750
    assert settings.grace_window_s == pytest.approx(0.75)


@pytest.mark.parametrize(
    "field, value",
    [
        ("grace_window_ms", -1),
        ("idle_timeout_s", 0),
        ("sweep_interval_s", 0),
        ("read_chunk_size", 0),
        ("kill_grace_s", -0.5),
        ("interpreter", ""),
    ],
)
def test_engine_settings_rejects_invalid_values(field: str, value) -> None:
    with pytest.raises(ValueError):
        config.EngineSettings(**{field: value})


@pytest.mark.parametrize(
    "field, value",
    [
        ("grace_window_ms", "fast"),
        ("idle_timeout_s", None),
        ("max_tombstones", [1]),
        ("kill_grace_s", True),
    ],
)
def test_engine_settings_from_mapping_rejects_non_numbers(field: str, value) -> None:
    with pytest.raises(ValueError) as exc_info:
        config.EngineSettings.from_mapping({field: value})

    assert f"engine.{field} must be a number" in str(exc_info.value)


def test_engine_settings_from_mapping_accepts_quoted_numbers() -> None:
    settings = config.EngineSettings.from_mapping(
        {"grace_window_ms": "750", "idle_timeout_s": "12.5"}
    )

    assert settings.grace_window_ms == 750
    assert settings.idle_timeout_s == pytest.approx(12.5)


def test_load_engine_settings_reports_bad_user_value(data_home: Path) -> None:
    write_user_config(data_home, "engine:\n  grace_window_ms: fast\n")
    cfg = config.load_config(data_home)

    with pytest.raises(ValueError, match="grace_window_ms"):
        config.load_engine_settings(cfg)


def test_load_engine_settings_precedence(data_home: Path) -> None:
    """
    defaults < user config file < keyword overrides
    """
    write_user_config(
        data_home,
        "engine:\n  grace_window_ms: 1500\n  idle_timeout_s: 42\n",
    )
    cfg = config.load_config(data_home)

    settings = config.load_engine_settings(cfg, idle_timeout_s=7)

    assert settings.grace_window_ms == 1500
    assert settings.idle_timeout_s == 7
    assert settings.read_chunk_size == config.load_defaults_yaml()["engine"]["read_chunk_size"]


def test_with_overrides_normalizes_interpreter_args() -> None:
    settings = config.EngineSettings().with_overrides(interpreter_args=["-I"])

    assert settings.interpreter_args == ("-I",)
