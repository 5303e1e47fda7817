from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import httpx
import pytest
import respx
from typer.testing import CliRunner

from oracle_bridge.cli.main import app
from oracle_bridge.version import __version__

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: Any):
    for key in list(os.environ):
        if key.startswith("ORACLE_BRIDGE_"):
            monkeypatch.delenv(key)
    yield
    # handlers point at CliRunner's captured streams
    for h in list(logging.getLogger("oracle_bridge").handlers):
        logging.getLogger("oracle_bridge").removeHandler(h)


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_generate_and_show(tmp_path: Path, shirts_defs: str) -> None:
    defs = tmp_path / "shop.proto"
    defs.write_text(shirts_defs, encoding="utf-8")
    out = tmp_path / "src"

    result = runner.invoke(app, ["generate", str(defs), "--out", str(out), "--name", "shop"])
    assert result.exit_code == 0, result.output
    assert f"Declarations: {out / 'shop.cairo'}" in result.output
    assert "Schema hash: 0x" in result.output
    assert "from shop.proto" in (out / "shop.cairo").read_text(encoding="utf-8")

    lock = out / "oracle_lock.json"
    shown = runner.invoke(app, ["lock", "show", str(lock)])
    assert shown.exit_code == 0, shown.output
    assert "Package: shirts" in shown.output
    assert "Service Shop:" in shown.output
    assert "get_shirt" in shown.output

    as_json = runner.invoke(app, ["lock", "show", str(lock), "--json"])
    assert as_json.exit_code == 0
    assert json.loads(as_json.output)["package"] == "shirts"


def test_generate_reports_schema_errors(tmp_path: Path) -> None:
    defs = tmp_path / "bad.proto"
    defs.write_text("message A { map<string, u32> m = 1; }", encoding="utf-8")
    result = runner.invoke(app, ["generate", str(defs), "--out", str(tmp_path)])
    assert result.exit_code == 1
    assert "UNSUPPORTED_FIELD_KIND" in result.output


def test_encode_and_decode(sqrt_lock_path: Path) -> None:
    lock = str(sqrt_lock_path)
    enc = runner.invoke(app, ["encode", "--lock", lock, "Request", '{"n": 1764}'])
    assert enc.exit_code == 0, enc.output
    assert json.loads(enc.output) == [1764]

    dec = runner.invoke(app, ["decode", "--lock", lock, "Response", "0x2a"])
    assert dec.exit_code == 0, dec.output
    assert json.loads(dec.output) == {"n": 42}


def test_encode_events(sqrt_lock_path: Path) -> None:
    result = runner.invoke(
        app, ["encode", "--events", "--lock", str(sqrt_lock_path), "Request", '{"n": 4}']
    )
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == [
        ["push", "struct"],
        ["key", "n"],
        ["value", 4],
        ["pop", "struct"],
    ]


def test_encode_from_stdin(sqrt_lock_path: Path) -> None:
    result = runner.invoke(app, ["encode", "--lock", str(sqrt_lock_path), "Request", "-"], input='{"n": 9}')
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == [9]


def test_encode_errors(sqrt_lock_path: Path) -> None:
    lock = str(sqrt_lock_path)
    bad_json = runner.invoke(app, ["encode", "--lock", lock, "Request", "{n:"])
    assert bad_json.exit_code == 2

    overflow = runner.invoke(app, ["encode", "--lock", lock, "Request", '{"n": -1}'])
    assert overflow.exit_code == 1
    assert "RANGE_OVERFLOW" in overflow.output


def test_decode_errors(sqrt_lock_path: Path) -> None:
    trailing = runner.invoke(app, ["decode", "--lock", str(sqrt_lock_path), "Response", "1", "2"])
    assert trailing.exit_code == 1
    assert "TRAILING_ELEMENTS" in trailing.output

    not_a_number = runner.invoke(app, ["decode", "--lock", str(sqrt_lock_path), "Response", "x"])
    assert not_a_number.exit_code == 1
    assert "TYPE_MISMATCH" in not_a_number.output


def test_missing_lock(tmp_path: Path) -> None:
    result = runner.invoke(app, ["decode", "--lock", str(tmp_path / "none.json"), "Response", "1"])
    assert result.exit_code == 1
    assert "LOCK_LOAD_ERROR" in result.output


@respx.mock
def test_ask(sqrt_lock_path: Path, servers_path: Path) -> None:
    route = respx.post("http://oracle.test:3000/sqrt").mock(
        return_value=httpx.Response(200, json={"result": {"n": 42}})
    )
    result = runner.invoke(
        app, ["ask", "--lock", str(sqrt_lock_path), "--servers", str(servers_path), "sqrt", "1764"]
    )
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == [42]
    assert route.called


@respx.mock
def test_ask_failure(sqrt_lock_path: Path, servers_path: Path) -> None:
    respx.post("http://oracle.test:3000/sqrt").mock(
        return_value=httpx.Response(200, json={"notresult": 1})
    )
    result = runner.invoke(
        app, ["ask", "--lock", str(sqrt_lock_path), "--servers", str(servers_path), "sqrt", "1764"]
    )
    assert result.exit_code == 1
    assert "DISPATCH_FAILED" in result.output
    assert "ORACLE_REJECTED" in result.output


def test_ask_schema_drift(sqrt_lock_path: Path, servers_path: Path) -> None:
    result = runner.invoke(
        app,
        [
            "ask",
            "--lock",
            str(sqrt_lock_path),
            "--servers",
            str(servers_path),
            "--expected-hash",
            "0x" + "0" * 64,
            "sqrt",
            "1764",
        ],
    )
    assert result.exit_code == 1
    assert "SCHEMA_DRIFT" in result.output


def test_config_paths_are_defaults(tmp_path: Path, sqrt_lock_path: Path) -> None:
    cfg = tmp_path / "bridge.yaml"
    cfg.write_text(f"paths:\n  lock: {sqrt_lock_path}\n", encoding="utf-8")
    result = runner.invoke(app, ["--config", str(cfg), "lock", "show"])
    assert result.exit_code == 0, result.output
    assert "Service SqrtOracle:" in result.output


def test_bad_config_file(tmp_path: Path) -> None:
    cfg = tmp_path / "bridge.json"
    cfg.write_text("[1, 2]", encoding="utf-8")
    result = runner.invoke(app, ["--config", str(cfg), "version"])
    assert result.exit_code == 1
    assert "CONFIG_ERROR" in result.output


def test_bad_config_duration(tmp_path: Path) -> None:
    cfg = tmp_path / "bridge.yaml"
    cfg.write_text("polling:\n  interval_s: eventually\n", encoding="utf-8")
    result = runner.invoke(app, ["--config", str(cfg), "version"])
    assert result.exit_code == 1
    assert "CONFIG_ERROR" in result.output
    assert "polling.interval_s" in result.output
