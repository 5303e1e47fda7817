"""
Server-address table: service name → where (and how) to reach its oracle.

Accepted file shapes (JSON or YAML)::

    {
      "SqrtOracle": "localhost:3000",
      "Shirts": {
        "server_url": "https://oracle.example/api",
        "polling": true,
        "polling_config": {"max_attempts": 10, "polling_interval": 1,
                           "request_timeout": 5, "overall_timeout": 30},
        "headers": {"Authorization": "Bearer abc"},
        "timeout": 15
      }
    }

A bare ``host:port`` is given an ``http://`` scheme. The table is loaded once at
run start and read-only afterwards.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Union

import jsonschema
import yaml

from ..config import PollingDefaults
from ..errors import ConfigError, ServerNotConfigured
from ..logging import get_logger

__all__ = [
    "ADDRESS_TABLE_SCHEMA",
    "PollingConfig",
    "ServerEntry",
    "StaticAddressTable",
    "normalize_address",
    "load_address_table",
]

log = get_logger("oracle_bridge.dispatch.addresses")

_NUM = {"type": "number", "exclusiveMinimum": 0}

ADDRESS_TABLE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": {
        "oneOf": [
            {"type": "string", "minLength": 1},
            {
                "type": "object",
                "required": ["server_url"],
                "additionalProperties": False,
                "properties": {
                    "server_url": {"type": "string", "minLength": 1},
                    "polling": {"type": "boolean"},
                    "polling_config": {
                        "type": "object",
                        "additionalProperties": False,
                        "properties": {
                            "max_attempts": {"type": "integer", "minimum": 1},
                            "polling_interval": {"type": "number", "minimum": 0},
                            "request_timeout": _NUM,
                            "overall_timeout": _NUM,
                        },
                    },
                    "headers": {"type": "object", "additionalProperties": {"type": "string"}},
                    "timeout": _NUM,
                },
            },
        ]
    },
}


def normalize_address(addr: str) -> str:
    """``localhost:3000`` → ``http://localhost:3000``; trailing slashes dropped."""
    a = addr.strip()
    if "://" not in a:
        a = "http://" + a
    return a.rstrip("/")


@dataclass(frozen=True)
class PollingConfig:
    max_attempts: int = 30
    interval_s: float = 2.0
    request_timeout_s: float = 10.0
    overall_timeout_s: float = 60.0

    @classmethod
    def from_defaults(cls, d: PollingDefaults) -> "PollingConfig":
        return cls(d.max_attempts, d.interval_s, d.request_timeout_s, d.overall_timeout_s)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], base: Optional["PollingConfig"] = None) -> "PollingConfig":
        b = base or cls()
        return cls(
            max_attempts=int(d.get("max_attempts", b.max_attempts)),
            interval_s=float(d.get("polling_interval", b.interval_s)),
            request_timeout_s=float(d.get("request_timeout", b.request_timeout_s)),
            overall_timeout_s=float(d.get("overall_timeout", b.overall_timeout_s)),
        )


@dataclass(frozen=True)
class ServerEntry:
    service: str
    server_url: str
    polling: bool = False
    polling_config: PollingConfig = field(default_factory=PollingConfig)
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout_s: Optional[float] = None

    def url_for(self, path: str) -> str:
        return f"{self.server_url}/{path}"

    def status_url(self, job_id: str) -> str:
        return f"{self.server_url}/status/{job_id}"


class StaticAddressTable:
    """In-memory :class:`~oracle_bridge.interfaces.AddressTable`."""

    def __init__(self, entries: Mapping[str, ServerEntry]) -> None:
        self._entries = MappingProxyType(dict(entries))

    def lookup(self, service: str) -> Optional[ServerEntry]:
        return self._entries.get(service)

    def require(self, service: str) -> ServerEntry:
        entry = self._entries.get(service)
        if entry is None:
            raise ServerNotConfigured(service)
        return entry

    def __contains__(self, service: object) -> bool:
        return service in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @classmethod
    def from_mapping(
        cls,
        data: Any,
        *,
        polling_defaults: Optional[PollingDefaults] = None,
    ) -> "StaticAddressTable":
        try:
            jsonschema.validate(data, ADDRESS_TABLE_SCHEMA)
        except jsonschema.ValidationError as e:
            path = "/".join(str(p) for p in e.absolute_path) or "$"
            raise ConfigError(
                f"invalid server-address table at {path}: {e.message}", details={"path": path}
            ) from e

        base = PollingConfig.from_defaults(polling_defaults or PollingDefaults())
        entries: Dict[str, ServerEntry] = {}
        for service, spec in data.items():
            if isinstance(spec, str):
                entries[service] = ServerEntry(service, normalize_address(spec), polling_config=base)
                continue
            entries[service] = ServerEntry(
                service=service,
                server_url=normalize_address(spec["server_url"]),
                polling=bool(spec.get("polling", False)),
                polling_config=PollingConfig.from_dict(spec.get("polling_config") or {}, base),
                headers=dict(spec.get("headers") or {}),
                timeout_s=float(spec["timeout"]) if "timeout" in spec else None,
            )
        return cls(entries)


def load_address_table(
    path: Union[str, Path], *, polling_defaults: Optional[PollingDefaults] = None
) -> StaticAddressTable:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read server-address table {p}: {e}", details={"path": str(p)}) from e
    try:
        if p.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot parse server-address table {p}: {e}", details={"path": str(p)}) from e
    table = StaticAddressTable.from_mapping(data, polling_defaults=polling_defaults)
    log.debug("address table loaded", extra={"path": str(p), "services": sorted(table)})
    return table
