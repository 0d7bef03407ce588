from __future__ import annotations

from pathlib import Path

import pytest

from fixsweep.config import (
    DEFAULT_CONFIG_NAME,
    FixsweepSettings,
    ServerSpec,
    fixsweep_defaults,
    load_settings,
    merge_payload,
)
from fixsweep.exceptions import ConfigError


def _write_config(root: Path, body: str) -> Path:
    path = root / DEFAULT_CONFIG_NAME
    path.write_text(body, encoding="utf-8")
    return path


def test_defaults_without_config_file(tmp_path: Path) -> None:
    settings = load_settings(root=tmp_path, environ={})
    assert settings == FixsweepSettings()
    assert settings.fanout_grace == pytest.approx(0.1)
    assert settings.settle_delay == pytest.approx(0.1)
    assert settings.request_timeout == pytest.approx(10.0)
    assert settings.document_fix_kind == "source.fixAll"
    assert settings.point_fix_kind == "quickfix"


def test_config_file_section_is_loaded(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
[fixsweep]
fanout_grace_ms = 250
log_level = "debug"

[[fixsweep.servers]]
name = "ruff"
command = ["ruff", "server"]
languages = ["python"]
""",
    )
    settings = load_settings(root=tmp_path, environ={})
    assert settings.fanout_grace_ms == 250
    assert settings.log_level == "DEBUG"
    assert settings.servers == [
        ServerSpec(name="ruff", command=["ruff", "server"], languages=["python"])
    ]


def test_environment_then_overrides_win(tmp_path: Path) -> None:
    _write_config(tmp_path, "[fixsweep]\nsettle_delay_ms = 5\nlog_level = 'info'\n")
    settings = load_settings(
        root=tmp_path,
        environ={"FIXSWEEP_SETTLE_DELAY_MS": "40", "FIXSWEEP_LOG_LEVEL": "error"},
        overrides={"log_level": "debug"},
    )
    assert settings.settle_delay_ms == 40
    assert settings.log_level == "DEBUG"


def test_explicit_config_path(tmp_path: Path) -> None:
    path = tmp_path / "elsewhere.toml"
    path.write_text("[fixsweep]\nrequest_timeout_ms = 0\n", encoding="utf-8")
    settings = load_settings(config_path=path, environ={})
    assert settings.request_timeout is None


def test_invalid_toml_raises_config_error(tmp_path: Path) -> None:
    _write_config(tmp_path, "[fixsweep\n")
    with pytest.raises(ConfigError):
        load_settings(root=tmp_path, environ={})


@pytest.mark.parametrize(
    "body",
    [
        "[fixsweep]\nfanout_grace_ms = -1\n",
        "[fixsweep]\nsettle_delay_ms = 'soon'\n",
        "[[fixsweep.servers]]\nname = 'x'\ncommand = []\n",
    ],
)
def test_invalid_values_raise_config_error(tmp_path: Path, body: str) -> None:
    _write_config(tmp_path, body)
    with pytest.raises(ConfigError):
        load_settings(root=tmp_path, environ={})


def test_non_table_section_is_ignored(tmp_path: Path) -> None:
    _write_config(tmp_path, "fixsweep = 3\n")
    assert fixsweep_defaults(root=tmp_path) == {}


def test_merge_payload_skips_none() -> None:
    assert merge_payload({"a": None, "b": 2}, {"a": 1}) == {"a": 1, "b": 2}


def test_server_spec_language_filter() -> None:
    assert ServerSpec(name="any", command=["srv"]).handles("lua")
    spec = ServerSpec(name="py", command=["srv"], languages=["python"])
    assert spec.handles("python")
    assert not spec.handles("lua")
