from __future__ import annotations

import io
import json
import logging
import os
from pathlib import Path
from typing import Any

import pytest

from oracle_bridge import logging as bridge_logging
from oracle_bridge.config import STARK_PRIME, Config, load_config
from oracle_bridge.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: Any) -> None:
    for key in list(os.environ):
        if key.startswith("ORACLE_BRIDGE_"):
            monkeypatch.delenv(key)


def test_defaults() -> None:
    cfg = load_config()
    assert cfg == Config()
    assert cfg.codec.modulus == STARK_PRIME
    assert cfg.paths.lock == "oracle_lock.json"


def test_env_overrides(monkeypatch: Any) -> None:
    monkeypatch.setenv("ORACLE_BRIDGE_REQUEST_TIMEOUT", "1500ms")
    monkeypatch.setenv("ORACLE_BRIDGE_POLL_MAX_ATTEMPTS", "4")
    monkeypatch.setenv("ORACLE_BRIDGE_POLL_OVERALL_TIMEOUT", "2m")
    monkeypatch.setenv("ORACLE_BRIDGE_SERVERS", "/etc/oracle/servers.yaml")
    cfg = load_config()
    assert cfg.transport.request_timeout_s == 1.5
    assert cfg.polling.max_attempts == 4
    assert cfg.polling.overall_timeout_s == 120.0
    assert cfg.paths.servers == "/etc/oracle/servers.yaml"


def test_file_then_env(tmp_path: Path, monkeypatch: Any) -> None:
    p = tmp_path / "bridge.yaml"
    p.write_text(
        "transport:\n  request_timeout_s: 5\n  headers:\n    X-Api-Key: k\npolling:\n  interval_s: 0.25\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("ORACLE_BRIDGE_CONFIG", str(p))
    monkeypatch.setenv("ORACLE_BRIDGE_POLL_INTERVAL", "1s")
    cfg = load_config()
    assert cfg.transport.request_timeout_s == 5
    assert cfg.transport.headers == {"X-Api-Key": "k"}
    assert cfg.polling.interval_s == 1.0


def test_overrides_win(tmp_path: Path) -> None:
    p = tmp_path / "bridge.json"
    p.write_text(json.dumps({"paths": {"out_dir": "gen"}}), encoding="utf-8")
    cfg = load_config(p, overrides={"paths": {"lock": "x.json"}})
    assert cfg.paths.out_dir == "gen"
    assert cfg.paths.lock == "x.json"


@pytest.mark.parametrize(
    "overrides",
    [
        {"transport": {"request_timeout_s": 0}},
        {"polling": {"max_attempts": 0}},
        {"polling": {"interval_s": -1}},
        {"codec": {"modulus": 2**64}},
        {"codec": {"prime": 7}},
    ],
)
def test_invalid_settings(overrides) -> None:
    with pytest.raises(ConfigError):
        load_config(overrides=overrides)


def test_file_values_are_parsed_like_env(tmp_path: Path) -> None:
    p = tmp_path / "bridge.json"
    p.write_text(
        json.dumps(
            {
                "transport": {"request_timeout_s": "30s"},
                "polling": {"interval_s": "1500ms", "overall_timeout_s": "2m", "max_attempts": "0x5"},
                "codec": {"modulus": hex(STARK_PRIME)},
            }
        ),
        encoding="utf-8",
    )
    cfg = load_config(p)
    assert cfg.transport.request_timeout_s == 30.0
    assert cfg.polling.interval_s == 1.5
    assert cfg.polling.overall_timeout_s == 120.0
    assert cfg.polling.max_attempts == 5
    assert cfg.codec.modulus == STARK_PRIME


def test_yaml_durations_and_override_strings(tmp_path: Path) -> None:
    p = tmp_path / "bridge.yaml"
    p.write_text("polling:\n  request_timeout_s: 250ms\n  max_attempts: \"7\"\n", encoding="utf-8")
    cfg = load_config(p, overrides={"transport": {"request_timeout_s": "2s"}})
    assert cfg.polling.request_timeout_s == 0.25
    assert cfg.polling.max_attempts == 7
    assert cfg.transport.request_timeout_s == 2.0


@pytest.mark.parametrize(
    "doc",
    [
        {"transport": {"request_timeout_s": "soon"}},
        {"polling": {"interval_s": [1]}},
        {"polling": {"max_attempts": True}},
        {"polling": {"max_attempts": "many"}},
        {"codec": {"modulus": "abc"}},
        {"transport": 5},
        {"paths": ["lock.json"]},
    ],
)
def test_invalid_file_values(tmp_path: Path, doc) -> None:
    p = tmp_path / "bridge.json"
    p.write_text(json.dumps(doc), encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(p)


def test_unreadable_config(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")


def test_json_log_lines_carry_context() -> None:
    buf = io.StringIO()
    bridge_logging.configure(json=True, level="DEBUG", stream=buf)
    log = bridge_logging.get_logger("oracle_bridge.test")
    try:
        with bridge_logging.trace_scope("t-1"):
            bridge_logging.bind(selector="sqrt")
            log.info("dispatch state", extra={"state": "Resolved"})
        log.info("outside")
    finally:
        for h in list(logging.getLogger("oracle_bridge").handlers):
            logging.getLogger("oracle_bridge").removeHandler(h)

    first, second = [json.loads(line) for line in buf.getvalue().splitlines()]
    assert first["trace_id"] == "t-1"
    assert first["selector"] == "sqrt"
    assert first["state"] == "Resolved"
    assert "trace_id" not in second
