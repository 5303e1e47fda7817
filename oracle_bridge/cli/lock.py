"""Inspect lock artifacts."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from ..errors import BridgeError
from ..schema import load_lock

app = typer.Typer(help="Inspect oracle lock artifacts.")


@app.command()
def show(
    lock: Optional[Path] = typer.Argument(None, help="Lock artifact (default: paths.lock from config)"),
    as_json: bool = typer.Option(False, "--json", help="Print the whole artifact as JSON"),
) -> None:
    """Print the schema hash, services and selectors of a lock artifact."""
    from .main import _lock_path, fail

    try:
        artifact = load_lock(_lock_path(lock))
    except BridgeError as e:
        fail(e)
    if as_json:
        typer.echo(json.dumps(artifact.to_dict(), indent=2, sort_keys=True))
        return

    model = artifact.model
    typer.echo(f"Package: {model.package or '-'}")
    typer.echo(f"Schema hash: {artifact.schema_hash}")
    typer.echo(f"Messages: {len(model.messages)}  Enums: {len(model.enums)}")
    for service in model.services.values():
        typer.echo(f"Service {service.name}:")
        for m in service.methods.values():
            typer.echo(f"  {m.selector:<24} /{m.path:<20} {m.request} -> {m.response}")
