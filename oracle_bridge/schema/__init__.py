"""
oracle_bridge.schema
====================

Type graph of messages, enums and services (:mod:`.types`), the definitions
parser that builds it (:mod:`.idl`) and the lock artifact that persists it
(:mod:`.lock`).

Typical use::

    from oracle_bridge.schema import load_file, build_lock, dumps_lock

    model = load_file("oracle.proto")
    lock = build_lock(model)
    text = dumps_lock(lock)
"""

from .types import (SCALAR_KINDS, ArrayOf, EnumRef, EnumSpec, FieldSpec,
                    MessageRef, MessageSpec, MethodSpec, OptionalOf, Scalar,
                    SchemaModel, ServiceSpec, TypeRef, type_from_dict)
from .idl import SCALAR_ALIASES, load, load_file
from .lock import (LOCK_SCHEMA, LOCK_VERSION, LockArtifact, build_lock,
                   compute_schema_hash, dumps_lock, load_lock, loads_lock,
                   model_to_dict, schema_hash_felt)

__all__ = [
    # types
    "SCALAR_KINDS",
    "Scalar",
    "MessageRef",
    "EnumRef",
    "OptionalOf",
    "ArrayOf",
    "TypeRef",
    "type_from_dict",
    "FieldSpec",
    "MessageSpec",
    "EnumSpec",
    "MethodSpec",
    "ServiceSpec",
    "SchemaModel",
    # definitions
    "SCALAR_ALIASES",
    "load",
    "load_file",
    # lock
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
