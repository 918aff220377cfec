from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from chat_widget.config import DEFAULTS, _apply_env_overrides, coerce_scalar, load_config
from chat_widget.controller import make_timing


def test_missing_file_returns_defaults(tmp_path: Path, clean_env):
    cfg = load_config(str(tmp_path / "nope.yaml"))
    assert cfg == DEFAULTS
    assert cfg is not DEFAULTS


def test_file_is_merged_over_defaults(tmp_path: Path, clean_env):
    path = tmp_path / "cfg.yaml"
    path.write_text(
        yaml.safe_dump({"timing": {"base_delay_ms": 50}, "assistant": {"name": "Acme"}}),
        encoding="utf-8",
    )
    cfg = load_config(str(path))
    assert cfg["timing"]["base_delay_ms"] == 50
    assert cfg["timing"]["read_at_ms"] == 900
    assert cfg["assistant"]["name"] == "Acme"
    assert cfg["storage"]["backend"] == "file"


def test_env_path_and_overrides(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "env.yaml"
    path.write_text("storage:\n  backend: memory\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_WIDGET_CONFIG", str(path))
    monkeypatch.setenv("CHAT_WIDGET__TIMING__PER_CHAR_MS", "3")
    monkeypatch.setenv("CHAT_WIDGET__STORAGE__DATA_DIR", "/tmp/chat")
    monkeypatch.setenv("CHAT_WIDGET__SERVER__DEBUG", "true")

    cfg = load_config()
    assert cfg["storage"]["backend"] == "memory"
    assert cfg["timing"]["per_char_ms"] == 3
    assert cfg["storage"]["data_dir"] == "/tmp/chat"
    assert cfg["server"]["debug"] is True


def test_shipped_default_config_matches_builtin(clean_env):
    root = Path(__file__).resolve().parent.parent
    cfg = load_config(str(root / "config" / "default.yaml"))
    assert cfg == DEFAULTS


def test_invalid_yaml_raises(tmp_path: Path, clean_env):
    path = tmp_path / "bad.yaml"
    path.write_text("timing: [unclosed", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config(str(path))


def test_non_mapping_raises(tmp_path: Path, clean_env):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config(str(path))


@pytest.mark.parametrize(
    "raw, expected",
    [("true", True), ("FALSE", False), ("42", 42), ("-3", -3), ("0.5", 0.5), ("data/dir", "data/dir"), ("1.2.3", "1.2.3")],
)
def test_coerce_scalar(raw, expected):
    value = coerce_scalar(raw)
    assert value == expected
    assert type(value) is type(expected)


def test_env_overrides_with_custom_prefix():
    cfg = {"timing": {"base_delay_ms": 600}}
    environ = {
        "MYAPP__TIMING__BASE_DELAY_MS": "10",
        "MYAPP__NEW__DEEP__FLAG": "false",
        "CHAT_WIDGET__TIMING__BASE_DELAY_MS": "99",
        "UNRELATED": "x",
    }
    out = _apply_env_overrides(cfg, environ=environ, prefix="MYAPP__")
    assert out is cfg
    assert cfg == {"timing": {"base_delay_ms": 10}, "new": {"deep": {"flag": False}}}


def test_env_override_replaces_scalar_section(clean_env):
    cfg = {"server": "off"}
    _apply_env_overrides(cfg, environ={"CHAT_WIDGET__SERVER__PORT": "8080"})
    assert cfg == {"server": {"port": 8080}}


def test_string_timing_values_are_coerced():
    timing = make_timing({"timing": {"base_delay_ms": "400", "read_at_ms": 700}})
    assert timing.base_delay_ms == 400
    assert timing.read_at_ms == 700
