"""
Lock artifact: the JSON snapshot of a :class:`SchemaModel`.

The generator writes it next to the VM-side declarations; the dispatcher
reloads it at run start instead of re-parsing the definitions. Layout::

    {
      "version": 1,
      "package": "oracle.sqrt" | null,
      "schema_hash": "0x<sha3-256>",
      "messages": {"Request": [{"name": "n", "type": {"scalar": "u64"}}]},
      "enums":    {"Mode": ["Fast", "Exact"]},
      "services": {"SqrtOracle": {"Sqrt": {"selector": "sqrt", "path": "sqrt",
                                           "request": "Request", "response": "Response"}}}
    }

``schema_hash`` is sha3-256 over the canonical JSON (sorted keys, compact
separators) of everything else. Message field lists keep declaration order, so
reordering fields changes the hash.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

import jsonschema

from ..errors import (BridgeError, LockCorrupted, LockLoadError,
                      LockSerializationError, SchemaError)
from ..logging import get_logger
from .types import (ArrayOf, EnumRef, EnumSpec, FieldSpec, MessageRef,
                    MessageSpec, MethodSpec, OptionalOf, SchemaModel,
                    ServiceSpec, TypeRef, check_recursion,
                    type_from_dict)

__all__ = [
    "LOCK_VERSION",
    "LOCK_SCHEMA",
    "LockArtifact",
    "model_to_dict",
    "compute_schema_hash",
    "build_lock",
    "dumps_lock",
    "loads_lock",
    "load_lock",
    "schema_hash_felt",
]

log = get_logger("oracle_bridge.schema.lock")

LOCK_VERSION = 1

_TYPE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "minProperties": 1,
    "maxProperties": 1,
    "properties": {
        "scalar": {"type": "string"},
        "message": {"type": "string"},
        "enum": {"type": "string"},
        "optional": {"$ref": "#/definitions/type"},
        "array": {"$ref": "#/definitions/type"},
    },
    "additionalProperties": False,
}

LOCK_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["version", "schema_hash", "messages", "enums", "services"],
    "additionalProperties": False,
    "definitions": {"type": _TYPE_SCHEMA},
    "properties": {
        "version": {"const": LOCK_VERSION},
        "package": {"type": ["string", "null"]},
        "schema_hash": {"type": "string", "pattern": "^0x[0-9a-f]{64}$"},
        "messages": {
            "type": "object",
            "additionalProperties": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["name", "type"],
                    "additionalProperties": False,
                    "properties": {
                        "name": {"type": "string"},
                        "type": {"$ref": "#/definitions/type"},
                    },
                },
            },
        },
        "enums": {
            "type": "object",
            "additionalProperties": {"type": "array", "items": {"type": "string"}},
        },
        "services": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "additionalProperties": {
                    "type": "object",
                    "required": ["selector", "path", "request", "response"],
                    "additionalProperties": False,
                    "properties": {
                        "selector": {"type": "string"},
                        "path": {"type": "string"},
                        "request": {"type": "string"},
                        "response": {"type": "string"},
                    },
                },
            },
        },
    },
}


@dataclass(frozen=True)
class LockArtifact:
    model: SchemaModel
    schema_hash: str
    version: int = LOCK_VERSION

    def to_dict(self) -> Dict[str, Any]:
        d = model_to_dict(self.model)
        d["schema_hash"] = self.schema_hash
        return d


# ──────────────────────────────────────────────────────────────────────────────
# Dump
# ──────────────────────────────────────────────────────────────────────────────


def model_to_dict(model: SchemaModel) -> Dict[str, Any]:
    """Lock document without ``schema_hash``."""
    return {
        "version": LOCK_VERSION,
        "package": model.package,
        "messages": {
            name: [f.to_dict() for f in spec.fields] for name, spec in model.messages.items()
        },
        "enums": {name: list(spec.variants) for name, spec in model.enums.items()},
        "services": {
            name: {m.name: m.to_dict() for m in spec.methods.values()}
            for name, spec in model.services.items()
        },
    }


def _canonical(doc: Dict[str, Any]) -> bytes:
    return json.dumps(doc, sort_keys=True, separators=(",", ":"), ensure_ascii=True).encode("ascii")


def compute_schema_hash(model: SchemaModel) -> str:
    return "0x" + hashlib.sha3_256(_canonical(model_to_dict(model))).hexdigest()


def build_lock(model: SchemaModel) -> LockArtifact:
    try:
        return LockArtifact(model=model, schema_hash=compute_schema_hash(model))
    except (TypeError, ValueError) as e:
        raise LockSerializationError(f"schema model cannot be serialized: {e}") from e


def dumps_lock(lock: LockArtifact) -> str:
    """Pretty JSON for the file on disk; key order is stable."""
    try:
        return json.dumps(lock.to_dict(), indent=2, sort_keys=True) + "\n"
    except (TypeError, ValueError) as e:
        raise LockSerializationError(f"lock artifact cannot be serialized: {e}") from e


# ──────────────────────────────────────────────────────────────────────────────
# Load
# ──────────────────────────────────────────────────────────────────────────────


def _check_refs(model: SchemaModel, owner: str, ty: TypeRef) -> None:
    if isinstance(ty, OptionalOf):
        _check_refs(model, owner, ty.inner)
    elif isinstance(ty, ArrayOf):
        _check_refs(model, owner, ty.item)
    elif isinstance(ty, MessageRef) and ty.name not in model.messages:
        raise LockLoadError(f"{owner}: unknown message {ty.name!r}")
    elif isinstance(ty, EnumRef) and ty.name not in model.enums:
        raise LockLoadError(f"{owner}: unknown enum {ty.name!r}")


def _model_from_dict(doc: Dict[str, Any]) -> SchemaModel:
    messages = {
        name: MessageSpec(name, tuple(FieldSpec(f["name"], type_from_dict(f["type"])) for f in fields))
        for name, fields in doc["messages"].items()
    }
    enums = {name: EnumSpec(name, tuple(variants)) for name, variants in doc["enums"].items()}
    services = {}
    for sname, methods in doc["services"].items():
        services[sname] = ServiceSpec(
            sname,
            {
                mname: MethodSpec(
                    service=sname,
                    name=mname,
                    selector=m["selector"],
                    path=m["path"],
                    request=m["request"],
                    response=m["response"],
                )
                for mname, m in methods.items()
            },
        )
    model = SchemaModel(messages=messages, enums=enums, services=services, package=doc.get("package"))

    for spec in model.messages.values():
        for f in spec.fields:
            _check_refs(model, f"{spec.name}.{f.name}", f.type)
    for m in model.iter_methods():
        for ref in (m.request, m.response):
            if ref not in model.messages:
                raise LockLoadError(f"{m.service}.{m.name}: unknown message {ref!r}")
    check_recursion(model)
    return model


def loads_lock(text: str) -> LockArtifact:
    """Parse, validate and hash-check a lock document."""
    try:
        doc = json.loads(text)
    except ValueError as e:
        raise LockLoadError(f"lock artifact is not valid JSON: {e}") from e
    try:
        jsonschema.validate(doc, LOCK_SCHEMA)
    except jsonschema.ValidationError as e:
        path = "/".join(str(p) for p in e.absolute_path) or "$"
        raise LockLoadError(f"lock artifact invalid at {path}: {e.message}", details={"path": path}) from e

    try:
        model = _model_from_dict(doc)
    except LockLoadError:
        raise
    except SchemaError as e:
        raise LockLoadError(f"lock artifact invalid: {e.message}", details=e.details) from e

    stored = doc["schema_hash"]
    actual = compute_schema_hash(model)
    if stored != actual:
        raise LockCorrupted(
            "lock artifact contents do not match its schema_hash",
            details={"stored": stored, "computed": actual},
        )
    return LockArtifact(model=model, schema_hash=stored, version=doc["version"])


def load_lock(path: Union[str, Path]) -> LockArtifact:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise LockLoadError(f"cannot read lock artifact {p}: {e}", details={"path": str(p)}) from e
    try:
        lock = loads_lock(text)
    except BridgeError as e:
        e.details.setdefault("path", str(p))
        raise
    log.debug("lock loaded", extra={"path": str(p), "schema_hash": lock.schema_hash})
    return lock


def schema_hash_felt(schema_hash: str) -> int:
    """
    The hash as it appears in generated VM code: its first 31 bytes read as one
    field element (a full 32-byte digest does not fit below the modulus).
    """
    raw = bytes.fromhex(schema_hash[2:] if schema_hash.startswith("0x") else schema_hash)
    return int.from_bytes(raw[:31], "big")
