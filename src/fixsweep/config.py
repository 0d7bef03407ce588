from __future__ import annotations

import os
from datetime import date, datetime, time
from pathlib import Path
from typing import List, Mapping, Optional, TypeAlias
import tomllib

from pydantic import BaseModel, ValidationError, field_validator

from fixsweep.exceptions import ConfigError

DEFAULT_CONFIG_NAME = "fixsweep.toml"
CONFIG_SECTION = "fixsweep"

_ENV_OVERRIDES = {
    "FIXSWEEP_FANOUT_GRACE_MS": "fanout_grace_ms",
    "FIXSWEEP_SETTLE_DELAY_MS": "settle_delay_ms",
    "FIXSWEEP_DIAGNOSTICS_WAIT_MS": "diagnostics_wait_ms",
    "FIXSWEEP_REQUEST_TIMEOUT_MS": "request_timeout_ms",
    "FIXSWEEP_LOG_LEVEL": "log_level",
}

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


class ServerSpec(BaseModel):
    name: str
    command: List[str]
    languages: List[str] = []

    @field_validator("command")
    @classmethod
    def _command_not_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("server command must not be empty")
        return value

    def handles(self, language_id: str) -> bool:
        return not self.languages or language_id in self.languages


class FixsweepSettings(BaseModel):
    fanout_grace_ms: int = 100
    settle_delay_ms: int = 100
    diagnostics_wait_ms: int = 2000
    request_timeout_ms: int = 10_000
    document_fix_kind: str = "source.fixAll"
    point_fix_kind: str = "quickfix"
    log_level: str = "WARNING"
    json_logs: bool = False
    servers: List[ServerSpec] = []

    @field_validator(
        "fanout_grace_ms",
        "settle_delay_ms",
        "diagnostics_wait_ms",
        "request_timeout_ms",
    )
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be zero or positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def fanout_grace(self) -> float:
        return self.fanout_grace_ms / 1000

    @property
    def settle_delay(self) -> float:
        return self.settle_delay_ms / 1000

    @property
    def diagnostics_wait(self) -> float:
        return self.diagnostics_wait_ms / 1000

    @property
    def request_timeout(self) -> Optional[float]:
        if self.request_timeout_ms == 0:
            return None
        return self.request_timeout_ms / 1000


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {path}: {exc}") from exc
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def fixsweep_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get(CONFIG_SECTION, {})
    return section if isinstance(section, dict) else {}


def _env_overrides(environ: Mapping[str, str]) -> TomlTable:
    overrides: TomlTable = {}
    for env_key, field_name in _ENV_OVERRIDES.items():
        raw = environ.get(env_key, "").strip()
        if raw:
            overrides[field_name] = raw
    return overrides


def merge_payload(payload: Mapping[str, TomlValue], defaults: Mapping[str, TomlValue]) -> TomlTable:
    merged: TomlTable = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def load_settings(
    root: Path | None = None,
    config_path: Path | None = None,
    *,
    overrides: Mapping[str, TomlValue] | None = None,
    environ: Mapping[str, str] | None = None,
) -> FixsweepSettings:
    """Build settings from the config file, then the environment, then overrides."""
    section = fixsweep_defaults(root=root, config_path=config_path)
    merged = merge_payload(_env_overrides(os.environ if environ is None else environ), section)
    merged = merge_payload(overrides or {}, merged)
    try:
        return FixsweepSettings.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"invalid fixsweep configuration: {exc}") from exc
