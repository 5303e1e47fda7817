"""
Flat encoder: JSON value → field elements.

Encoding is driven strictly by the declared type; the JSON shape is never used
to guess one. Rules (applied recursively):

- scalar            1 element (range-checked by width and modulus)
- string / bytes    ByteArray layout (see :mod:`.strings`)
- Optional<T>       presence (0/1) followed by T iff present
- Array<T>          length followed by each item
- Message           fields concatenated in declared order, no tags
- Enum              variant index

Errors carry a JSON-path (``$.x.y[2]``) to the offending value.
"""

from __future__ import annotations

from typing import Any, List, Union

from ..config import STARK_PRIME
from ..errors import TypeMismatch, UnknownEnumVariant
from ..schema.types import (ArrayOf, EnumRef, MessageRef, OptionalOf, Scalar,
                            SchemaModel, TypeRef)
from .felt import scalar_to_element
from .strings import json_to_bytes, pack_byte_array

__all__ = ["encode", "encode_into", "as_type"]


def as_type(model: SchemaModel, typ: Union[str, TypeRef]) -> TypeRef:
    return model.type_ref(typ) if isinstance(typ, str) else typ


def _json_kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def encode_into(
    out: List[int],
    model: SchemaModel,
    typ: TypeRef,
    value: Any,
    *,
    modulus: int = STARK_PRIME,
    path: str = "$",
) -> None:
    """Append the encoding of ``value`` to ``out``."""
    if isinstance(typ, Scalar):
        if typ.is_byte_string:
            out.extend(pack_byte_array(json_to_bytes(value, typ.kind, path=path)))
        else:
            out.append(scalar_to_element(value, typ, modulus=modulus, path=path))
        return

    if isinstance(typ, OptionalOf):
        if value is None:
            out.append(0)
            return
        out.append(1)
        encode_into(out, model, typ.inner, value, modulus=modulus, path=path)
        return

    if isinstance(typ, ArrayOf):
        if not isinstance(value, (list, tuple)):
            raise TypeMismatch(f"expected array, got {_json_kind(value)}", path=path)
        out.append(len(value))
        for i, item in enumerate(value):
            encode_into(out, model, typ.item, item, modulus=modulus, path=f"{path}[{i}]")
        return

    if isinstance(typ, EnumRef):
        spec = model.enum(typ.name)
        if not isinstance(value, str):
            raise TypeMismatch(
                f"expected {typ.name} variant name, got {_json_kind(value)}", path=path
            )
        idx = spec.index_of(value)
        if idx is None:
            raise UnknownEnumVariant(
                f"{value!r} is not a variant of {typ.name}",
                path=path,
                details={"variants": list(spec.variants)},
            )
        out.append(idx)
        return

    if isinstance(typ, MessageRef):
        spec = model.message(typ.name)
        if not isinstance(value, dict):
            raise TypeMismatch(f"expected {typ.name} object, got {_json_kind(value)}", path=path)
        unknown = sorted(set(value) - set(spec.field_names()))
        if unknown:
            raise TypeMismatch(
                f"unknown field(s) for {typ.name}: {', '.join(unknown)}", path=path
            )
        for f in spec.fields:
            fpath = f"{path}.{f.name}"
            if f.name not in value:
                if isinstance(f.type, OptionalOf):
                    out.append(0)
                    continue
                raise TypeMismatch(f"missing field {f.name!r} of {typ.name}", path=fpath)
            encode_into(out, model, f.type, value[f.name], modulus=modulus, path=fpath)
        return

    raise TypeMismatch(f"unsupported type reference {typ!r}", path=path)


def encode(
    model: SchemaModel,
    typ: Union[str, TypeRef],
    value: Any,
    *,
    modulus: int = STARK_PRIME,
) -> List[int]:
    """
    Encode ``value`` as ``typ`` (a :data:`TypeRef` or a declared type name).

    >>> encode(model, "SqrtRequest", {"n": 1764})
    [1764]
    """
    out: List[int] = []
    encode_into(out, model, as_type(model, typ), value, modulus=modulus)
    return out
