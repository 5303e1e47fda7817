"""
Build-time entry point: schema model → VM-side declarations + lock artifact.

Both outputs are produced from the same :class:`SchemaModel` in one call, and
the declarations embed the lock's ``schema_hash``, so a dispatcher started with
``expected_schema_hash`` can refuse a lock that no longer matches the code.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from ..errors import CodegenIOError
from ..logging import get_logger
from ..schema.lock import LockArtifact, build_lock, dumps_lock
from ..schema.types import SchemaModel
from .cairo import emit_cairo

__all__ = ["LOCK_FILE_NAME", "GeneratedArtifacts", "generate", "write_outputs"]

log = get_logger("oracle_bridge.codegen")

LOCK_FILE_NAME = "oracle_lock.json"


@dataclass(frozen=True)
class GeneratedArtifacts:
    declarations: str
    lock: LockArtifact

    @property
    def schema_hash(self) -> str:
        return self.lock.schema_hash

    def lock_text(self) -> str:
        return dumps_lock(self.lock)


def generate(model: SchemaModel, *, source: Optional[str] = None) -> GeneratedArtifacts:
    lock = build_lock(model)
    declarations = emit_cairo(model, lock.schema_hash, source=source)
    log.debug(
        "generated declarations",
        extra={
            "messages": len(model.messages),
            "enums": len(model.enums),
            "services": len(model.services),
            "schema_hash": lock.schema_hash,
        },
    )
    return GeneratedArtifacts(declarations=declarations, lock=lock)


def write_outputs(
    artifacts: GeneratedArtifacts,
    out_dir: Union[str, Path],
    *,
    name: str = "oracle",
    lock_name: str = LOCK_FILE_NAME,
) -> Tuple[Path, Path]:
    """
    Write ``<out_dir>/<name>.cairo`` and ``<out_dir>/<lock_name>``.
    Returns both paths.
    """
    out = Path(out_dir)
    cairo_path = out / f"{name}.cairo"
    lock_path = out / lock_name
    lock_text = artifacts.lock_text()
    try:
        out.mkdir(parents=True, exist_ok=True)
        cairo_path.write_text(artifacts.declarations, encoding="utf-8")
        lock_path.write_text(lock_text, encoding="utf-8")
    except OSError as e:
        raise CodegenIOError(
            f"cannot write generated files to {out}: {e}", details={"out_dir": str(out)}
        ) from e
    log.info(
        "wrote generated files",
        extra={"declarations": str(cairo_path), "lock": str(lock_path), "schema_hash": artifacts.schema_hash},
    )
    return cairo_path, lock_path
