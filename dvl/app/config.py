# dvl/app/config.py
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from dvl.core.errors import ConfigError
from dvl.transport.tcp import DEFAULT_PORT


@dataclass(frozen=True)
class DvlConfig:
    host: str = "192.168.194.95"
    port: int = DEFAULT_PORT
    driver: str = "tcp"
    connect_timeout_s: float = 5.0
    read_timeout_s: float = 0.2
    write_timeout_s: float = 2.0
    cmd_timeout_s: float = 3.0
    sweep_interval_s: float = 0.1
    max_pending_per_type: Optional[int] = 15
    command_trace: Optional[str] = None

    def transport_params(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "connect_timeout_s": self.connect_timeout_s,
            "read_timeout_s": self.read_timeout_s,
            "write_timeout_s": self.write_timeout_s,
        }


_TYPES: Dict[str, tuple] = {
    "host": (str,),
    "port": (int,),
    "driver": (str,),
    "connect_timeout_s": (int, float),
    "read_timeout_s": (int, float),
    "write_timeout_s": (int, float),
    "cmd_timeout_s": (int, float),
    "sweep_interval_s": (int, float),
    "max_pending_per_type": (int, type(None)),
    "command_trace": (str, type(None)),
}


def _validate(values: Mapping[str, Any], source: str) -> Dict[str, Any]:
    known = {f.name for f in fields(DvlConfig)}
    out: Dict[str, Any] = {}

    for key, value in values.items():
        if key not in known:
            raise ConfigError(
                f"Unknown config key '{key}' in {source}.",
                hint=f"Valid keys: {sorted(known)}",
                details={"key": key, "source": source},
            )
        expected = _TYPES[key]
        if isinstance(value, bool) or not isinstance(value, expected):
            raise ConfigError(
                f"Invalid value for '{key}' in {source}.",
                hint=f"Expected {' or '.join(t.__name__ for t in expected)}, got {type(value).__name__}.",
                details={"key": key, "value": value, "source": source},
            )
        if float in expected:
            value = float(value)
        out[key] = value

    timeouts = ("cmd_timeout_s", "sweep_interval_s", "read_timeout_s", "write_timeout_s", "connect_timeout_s")
    for key in timeouts:
        if key in out and out[key] <= 0:
            raise ConfigError(f"'{key}' must be > 0 in {source}.", details={"key": key, "value": out[key]})
    if out.get("max_pending_per_type") is not None and out["max_pending_per_type"] < 1:
        raise ConfigError(
            f"'max_pending_per_type' must be >= 1 in {source}.",
            hint="Use null for an unbounded queue.",
        )
    return out


def load_config(path: Optional[str | Path] = None, overrides: Optional[Mapping[str, Any]] = None) -> DvlConfig:
    """
    Build a DvlConfig from defaults, an optional YAML file and overrides
    (later wins). Overrides with value None are ignored.
    """
    cfg = DvlConfig()

    if path is not None:
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                doc = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {path}") from None
        except yaml.YAMLError as e:
            raise ConfigError(f"Config file is not valid YAML: {path}", hint=str(e)) from None

        if not isinstance(doc, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")
        doc = doc.get("dvl", doc)
        if not isinstance(doc, dict):
            raise ConfigError(f"'dvl' section must be a mapping: {path}")
        cfg = replace(cfg, **_validate(doc, str(path)))

    if overrides:
        given = {k: v for k, v in overrides.items() if v is not None}
        cfg = replace(cfg, **_validate(given, "overrides"))

    return cfg
