"""
oracle_bridge.config
--------------------

Runtime settings for code generation and oracle dispatch.

This module is dependency-light and safe to import early. It exposes:

- Dataclasses with sane defaults:
    * TransportConfig: request timeout and extra headers for oracle calls.
    * PollingDefaults: job polling parameters used when a server entry enables
      polling without its own ``polling_config``.
    * CodecConfig: the native field modulus.
    * PathsConfig: default lock / server-table / output locations.
    * Config: the whole bundle.

- load_config(): build Config from defaults ← file ← environment ← overrides.

Environment variables (prefix: ORACLE_BRIDGE_*)
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
ORACLE_BRIDGE_REQUEST_TIMEOUT=30s        # "ms/s/m" suffixes accepted
ORACLE_BRIDGE_POLL_MAX_ATTEMPTS=30
ORACLE_BRIDGE_POLL_INTERVAL=2s
ORACLE_BRIDGE_POLL_REQUEST_TIMEOUT=10s
ORACLE_BRIDGE_POLL_OVERALL_TIMEOUT=60s
ORACLE_BRIDGE_MODULUS=0x800000000000011000000000000000000000000000000000000000000000001
ORACLE_BRIDGE_LOCK=oracle_lock.json
ORACLE_BRIDGE_SERVERS=servers.json
ORACLE_BRIDGE_OUT_DIR=src

# Optional config file (JSON, or YAML by extension). Env still wins.
ORACLE_BRIDGE_CONFIG=/path/to/oracle_bridge.yaml
"""

from __future__ import annotations

import dataclasses
import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError

# STARK field prime: 2**251 + 17 * 2**192 + 1
STARK_PRIME = 2**251 + 17 * 2**192 + 1

_DUR_RE = re.compile(r"^\s*(?P<num>\d+(?:\.\d+)?)(?P<unit>ms|s|m)?\s*$", re.IGNORECASE)


# -----------------------------
# Helpers: parsing
# -----------------------------


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None and v != "" else default


def _parse_int(v: Optional[str], default: int) -> int:
    if v is None:
        return default
    try:
        return int(v, 0)
    except ValueError:
        return default


def _parse_duration_seconds(v: Optional[str], default: float) -> float:
    if v is None:
        return default
    m = _DUR_RE.match(v)
    if not m:
        return default
    num = float(m.group("num"))
    unit = (m.group("unit") or "s").lower()
    if unit == "ms":
        return num / 1000.0
    if unit == "m":
        return num * 60.0
    return num


def _coerce_int(v: Any, key: str) -> int:
    """Setting from a file or overrides: int, or a decimal / 0x string."""
    if isinstance(v, bool):
        raise ConfigError(f"{key} must be an integer", details={"key": key})
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        try:
            return int(v.strip(), 0)
        except ValueError:
            pass
    raise ConfigError(f"{key} must be an integer, got {v!r}", details={"key": key})


def _coerce_duration(v: Any, key: str) -> float:
    """Setting from a file or overrides: seconds as a number, or a "ms/s/m" string."""
    if isinstance(v, bool):
        raise ConfigError(f"{key} must be a duration", details={"key": key})
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str) and _DUR_RE.match(v):
        return _parse_duration_seconds(v, 0.0)
    raise ConfigError(f"{key} must be a duration, got {v!r}", details={"key": key})


def _load_file_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}", details={"path": str(path)}) from e
    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot parse config file {path}: {e}", details={"path": str(path)}) from e
    if not isinstance(data, dict):
        raise ConfigError("config file must contain a mapping", details={"path": str(path)})
    return data


# -----------------------------
# Dataclasses
# -----------------------------


@dataclass(frozen=True)
class TransportConfig:
    request_timeout_s: float = 30.0
    headers: Dict[str, str] = dataclasses.field(default_factory=dict)


@dataclass(frozen=True)
class PollingDefaults:
    max_attempts: int = 30
    interval_s: float = 2.0
    request_timeout_s: float = 10.0
    overall_timeout_s: float = 60.0


@dataclass(frozen=True)
class CodecConfig:
    modulus: int = STARK_PRIME


@dataclass(frozen=True)
class PathsConfig:
    lock: str = "oracle_lock.json"
    servers: str = "servers.json"
    out_dir: str = "src"


@dataclass(frozen=True)
class Config:
    transport: TransportConfig = dataclasses.field(default_factory=TransportConfig)
    polling: PollingDefaults = dataclasses.field(default_factory=PollingDefaults)
    codec: CodecConfig = dataclasses.field(default_factory=CodecConfig)
    paths: PathsConfig = dataclasses.field(default_factory=PathsConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transport": dataclasses.asdict(self.transport),
            "polling": dataclasses.asdict(self.polling),
            "codec": dataclasses.asdict(self.codec),
            "paths": dataclasses.asdict(self.paths),
        }


# -----------------------------
# Loader
# -----------------------------


def _apply_overrides(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: keys in overrides replace keys in base; dictionaries merge 1-level deep.
    """
    out = dict(base)
    for k, v in overrides.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            nv = dict(out[k])
            nv.update(v)
            out[k] = nv
        else:
            out[k] = v
    return out


_SECTIONS = ("transport", "polling", "codec", "paths")
_DURATIONS = (
    ("transport", "request_timeout_s"),
    ("polling", "interval_s"),
    ("polling", "request_timeout_s"),
    ("polling", "overall_timeout_s"),
)
_INTEGERS = (("polling", "max_attempts"), ("codec", "modulus"))


def _check_sections(d: Dict[str, Any]) -> None:
    for section in _SECTIONS:
        if not isinstance(d.get(section), dict):
            raise ConfigError(f"{section} must be a mapping", details={"key": section})


def _coerce_settings(d: Dict[str, Any]) -> None:
    """Parse file / override values the same way environment values are parsed."""
    _check_sections(d)
    for section, key in _DURATIONS:
        if key in d[section]:
            d[section][key] = _coerce_duration(d[section][key], f"{section}.{key}")
    for section, key in _INTEGERS:
        if key in d[section]:
            d[section][key] = _coerce_int(d[section][key], f"{section}.{key}")


def load_config(
    file_path: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None
) -> Config:
    """
    Build a Config from (defaults) ← file (JSON/YAML) ← environment ← overrides.
    """
    d: Dict[str, Any] = Config().to_dict()

    path_env = _env("ORACLE_BRIDGE_CONFIG")
    p = file_path or (Path(path_env) if path_env else None)
    if p:
        d = _apply_overrides(d, _load_file_config(Path(p)))
        _check_sections(d)

    transport = d.get("transport", {})
    polling = d.get("polling", {})
    codec = d.get("codec", {})
    paths = d.get("paths", {})

    transport["request_timeout_s"] = _parse_duration_seconds(
        _env("ORACLE_BRIDGE_REQUEST_TIMEOUT"),
        transport.get("request_timeout_s", TransportConfig.request_timeout_s),
    )
    polling.update(
        {
            "max_attempts": _parse_int(
                _env("ORACLE_BRIDGE_POLL_MAX_ATTEMPTS"),
                polling.get("max_attempts", PollingDefaults.max_attempts),
            ),
            "interval_s": _parse_duration_seconds(
                _env("ORACLE_BRIDGE_POLL_INTERVAL"),
                polling.get("interval_s", PollingDefaults.interval_s),
            ),
            "request_timeout_s": _parse_duration_seconds(
                _env("ORACLE_BRIDGE_POLL_REQUEST_TIMEOUT"),
                polling.get("request_timeout_s", PollingDefaults.request_timeout_s),
            ),
            "overall_timeout_s": _parse_duration_seconds(
                _env("ORACLE_BRIDGE_POLL_OVERALL_TIMEOUT"),
                polling.get("overall_timeout_s", PollingDefaults.overall_timeout_s),
            ),
        }
    )
    codec["modulus"] = _parse_int(
        _env("ORACLE_BRIDGE_MODULUS"), codec.get("modulus", STARK_PRIME)
    )
    paths.update(
        {
            "lock": _env("ORACLE_BRIDGE_LOCK", paths.get("lock", PathsConfig.lock)),
            "servers": _env("ORACLE_BRIDGE_SERVERS", paths.get("servers", PathsConfig.servers)),
            "out_dir": _env("ORACLE_BRIDGE_OUT_DIR", paths.get("out_dir", PathsConfig.out_dir)),
        }
    )

    d["transport"] = transport
    d["polling"] = polling
    d["codec"] = codec
    d["paths"] = paths

    if overrides:
        d = _apply_overrides(d, overrides)

    _coerce_settings(d)

    try:
        cfg = Config(
            transport=TransportConfig(**d["transport"]),
            polling=PollingDefaults(**d["polling"]),
            codec=CodecConfig(**d["codec"]),
            paths=PathsConfig(**d["paths"]),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid configuration: {e}") from e
    return _sanity(cfg)


def _sanity(cfg: Config) -> Config:
    if cfg.transport.request_timeout_s <= 0:
        raise ConfigError("transport.request_timeout_s must be > 0")
    if cfg.polling.max_attempts < 1:
        raise ConfigError("polling.max_attempts must be >= 1")
    if cfg.polling.interval_s < 0:
        raise ConfigError("polling.interval_s must be >= 0")
    if cfg.polling.request_timeout_s <= 0 or cfg.polling.overall_timeout_s <= 0:
        raise ConfigError("polling timeouts must be > 0")
    # The codec needs at least 128-bit integers and a sign split to fit.
    if cfg.codec.modulus <= 2**129:
        raise ConfigError("codec.modulus must exceed 2**129")
    return cfg


__all__ = [
    "STARK_PRIME",
    "TransportConfig",
    "PollingDefaults",
    "CodecConfig",
    "PathsConfig",
    "Config",
    "load_config",
]
