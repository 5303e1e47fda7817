"""
oracle-bridge - command line for the oracle bridge.

Commands:
  generate DEFS --out DIR     Emit <name>.cairo and oracle_lock.json from definitions
  lock show [LOCK]            Print services, selectors and the schema hash
  encode TYPE JSON            JSON value → field elements
  decode TYPE ELEMENTS...     Field elements → JSON value
  ask SELECTOR ELEMENTS...    Run one delegated-computation request end to end

Global options:
  --config PATH               Config file (JSON/YAML); env ORACLE_BRIDGE_CONFIG
  --log-level TEXT            Log level (default WARNING); env ORACLE_BRIDGE_LOG_LEVEL
  --json-logs / --text-logs   Log format

Examples:
  oracle-bridge generate oracle.proto --out src
  oracle-bridge encode --lock src/oracle_lock.json Request '{"n": 1764}'
  oracle-bridge ask --lock src/oracle_lock.json --servers servers.json sqrt 1764
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, List, NoReturn, Optional

import typer

from .. import logging as bridge_logging
from ..codec import decode_exact, encode, parse_json_int, stream
from ..codegen import generate as generate_artifacts
from ..codegen import write_outputs
from ..config import Config, load_config
from ..dispatch import OracleDispatcher
from ..errors import BridgeError, DispatchFailed
from ..schema import load_file, load_lock
from ..version import __version__
from . import lock as lock_cmd

app = typer.Typer(
    name="oracle-bridge",
    help="Schema-driven bridge between VM field elements and JSON oracle servers",
    no_args_is_help=True,
    add_completion=False,
)


class GlobalContext:
    def __init__(self) -> None:
        self.config: Config = Config()


_ctx = GlobalContext()


def _pretty(obj: Any) -> str:
    return json.dumps(obj, indent=2)


def fail(err: BridgeError) -> NoReturn:
    """Print a structured error to stderr and exit 1."""
    payload = err.to_dict()
    if isinstance(err, DispatchFailed):
        payload["cause"] = err.cause.to_dict()
    typer.echo(json.dumps({"error": payload}), err=True)
    raise typer.Exit(code=1)


def _lock_path(lock: Optional[Path]) -> Path:
    return lock or Path(_ctx.config.paths.lock)


@app.callback()
def main_callback(
    config: Optional[Path] = typer.Option(
        None, "--config", help="Path to config file (JSON or YAML)", envvar="ORACLE_BRIDGE_CONFIG"
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level"),
    json_logs: Optional[bool] = typer.Option(
        None, "--json-logs/--text-logs", help="Log format (default: JSON when not a TTY)"
    ),
) -> None:
    """
    Generate VM-side declarations from service definitions and serve the
    delegated-computation requests they raise.
    """
    bridge_logging.configure(json=json_logs, level=log_level, stream=sys.stderr)
    try:
        _ctx.config = load_config(config)
    except BridgeError as e:
        fail(e)


@app.command()
def version() -> None:
    """Print the package version."""
    typer.echo(__version__)


@app.command()
def generate(
    definitions: Path = typer.Argument(..., help="Service/message definitions file"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output directory"),
    name: str = typer.Option("oracle", "--name", help="Base name of the generated Cairo file"),
) -> None:
    """Write <name>.cairo and oracle_lock.json."""
    out_dir = out or Path(_ctx.config.paths.out_dir)
    try:
        model = load_file(definitions)
        artifacts = generate_artifacts(model, source=definitions.name)
        cairo_path, lock_path = write_outputs(artifacts, out_dir, name=name)
    except BridgeError as e:
        fail(e)
    typer.echo(f"Declarations: {cairo_path}")
    typer.echo(f"Lock: {lock_path}")
    typer.echo(f"Schema hash: {artifacts.schema_hash}")


@app.command("encode")
def encode_cmd(
    type_name: str = typer.Argument(..., metavar="TYPE", help="Message, enum or scalar type"),
    value: str = typer.Argument(..., metavar="JSON", help="JSON value ('-' reads stdin)"),
    lock: Optional[Path] = typer.Option(None, "--lock", help="Lock artifact"),
    events: bool = typer.Option(False, "--events", help="Emit push/pop events instead of flat elements"),
) -> None:
    """Encode a JSON value into field elements."""
    raw = sys.stdin.read() if value == "-" else value
    try:
        parsed = json.loads(raw)
    except ValueError as e:
        typer.echo(f"Invalid JSON value: {e}", err=True)
        raise typer.Exit(code=2)
    try:
        model = load_lock(_lock_path(lock)).model
        modulus = _ctx.config.codec.modulus
        if events:
            out: Any = [list(ev) for ev in stream.encode(model, type_name, parsed, modulus=modulus)]
        else:
            out = encode(model, type_name, parsed, modulus=modulus)
    except BridgeError as e:
        fail(e)
    typer.echo(json.dumps(out))


def _parse_elements(elements: List[str]) -> List[int]:
    try:
        return [parse_json_int(e, path=f"$[{i}]") for i, e in enumerate(elements)]
    except BridgeError as e:
        fail(e)


@app.command("decode")
def decode_cmd(
    type_name: str = typer.Argument(..., metavar="TYPE", help="Message, enum or scalar type"),
    elements: List[str] = typer.Argument(None, help="Field elements (decimal or 0x hex)"),
    lock: Optional[Path] = typer.Option(None, "--lock", help="Lock artifact"),
) -> None:
    """Decode field elements into a JSON value (the whole sequence must be consumed)."""
    values = _parse_elements(elements or [])
    try:
        model = load_lock(_lock_path(lock)).model
        out = decode_exact(model, type_name, values, modulus=_ctx.config.codec.modulus)
    except BridgeError as e:
        fail(e)
    typer.echo(_pretty(out))


@app.command()
def ask(
    selector: str = typer.Argument(..., help="Method selector, e.g. 'sqrt'"),
    elements: List[str] = typer.Argument(None, help="Encoded request elements"),
    lock: Optional[Path] = typer.Option(None, "--lock", help="Lock artifact"),
    servers: Optional[Path] = typer.Option(None, "--servers", help="Server-address table (JSON/YAML)"),
    expected_hash: Optional[str] = typer.Option(
        None, "--expected-hash", help="Schema hash the VM code was generated with"
    ),
) -> None:
    """Serve one delegated-computation request and print the response elements."""
    values = _parse_elements(elements or [])
    cfg = _ctx.config
    try:
        with OracleDispatcher.from_paths(
            _lock_path(lock),
            servers or Path(cfg.paths.servers),
            config=cfg,
            expected_schema_hash=expected_hash,
        ) as dispatcher:
            out = dispatcher.ask_oracle(selector, values)
    except BridgeError as e:
        fail(e)
    typer.echo(json.dumps(out))


app.add_typer(lock_cmd.app, name="lock")


def main() -> None:
    """Entry point for the oracle-bridge CLI."""
    app()


if __name__ == "__main__":
    main()
