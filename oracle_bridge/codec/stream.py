"""
Event-stream codec backend.

Same ``encode``/``decode`` contract as the flat codec, but the value is
described by a stack of events instead of one flat buffer::

    ("push", kind)   open a struct / array / optional / enum
    ("key", name)    next struct field
    ("value", int)   one field element
    ("pop", kind)    close the innermost open container

Arrays carry no length element and optionals no presence element; both follow
from what sits between ``push`` and ``pop``. Scalar values obey the same range
rules as the flat encoding, and byte strings are emitted as their ByteArray
elements.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple, Union

from ..config import STARK_PRIME
from ..errors import (DecodeError, InvalidEnumIndex, TrailingElements,
                      Truncated, TypeMismatch, UnknownEnumVariant)
from ..schema.types import (ArrayOf, EnumRef, MessageRef, OptionalOf, Scalar,
                            SchemaModel, TypeRef)
from .encoding import as_type
from .felt import check_element, scalar_from_element, scalar_to_element
from .strings import (bytes_to_json, json_to_bytes, pack_byte_array,
                      unpack_byte_array)

__all__ = ["Event", "STRUCT", "ARRAY", "OPTIONAL", "ENUM", "encode", "decode"]

Event = Tuple[str, Any]

STRUCT = "struct"
ARRAY = "array"
OPTIONAL = "optional"
ENUM = "enum"


# ──────────────────────────────────────────────────────────────────────────────
# Encode
# ──────────────────────────────────────────────────────────────────────────────

def _emit(out: List[Event], model: SchemaModel, typ: TypeRef, value: Any, modulus: int, path: str) -> None:
    if isinstance(typ, Scalar):
        if typ.is_byte_string:
            out.extend(("value", e) for e in pack_byte_array(json_to_bytes(value, typ.kind, path=path)))
        else:
            out.append(("value", scalar_to_element(value, typ, modulus=modulus, path=path)))
        return

    if isinstance(typ, OptionalOf):
        out.append(("push", OPTIONAL))
        if value is not None:
            _emit(out, model, typ.inner, value, modulus, path)
        out.append(("pop", OPTIONAL))
        return

    if isinstance(typ, ArrayOf):
        if not isinstance(value, (list, tuple)):
            raise TypeMismatch("expected array", path=path)
        out.append(("push", ARRAY))
        for i, item in enumerate(value):
            _emit(out, model, typ.item, item, modulus, f"{path}[{i}]")
        out.append(("pop", ARRAY))
        return

    if isinstance(typ, EnumRef):
        spec = model.enum(typ.name)
        if not isinstance(value, str):
            raise TypeMismatch(f"expected {typ.name} variant name", path=path)
        idx = spec.index_of(value)
        if idx is None:
            raise UnknownEnumVariant(f"{value!r} is not a variant of {typ.name}", path=path)
        out.extend([("push", ENUM), ("value", idx), ("pop", ENUM)])
        return

    spec = model.message(typ.name)
    if not isinstance(value, dict):
        raise TypeMismatch(f"expected {typ.name} object", path=path)
    unknown = sorted(set(value) - set(spec.field_names()))
    if unknown:
        raise TypeMismatch(f"unknown field(s) for {typ.name}: {', '.join(unknown)}", path=path)
    out.append(("push", STRUCT))
    for f in spec.fields:
        fpath = f"{path}.{f.name}"
        if f.name not in value and not isinstance(f.type, OptionalOf):
            raise TypeMismatch(f"missing field {f.name!r} of {typ.name}", path=fpath)
        out.append(("key", f.name))
        _emit(out, model, f.type, value.get(f.name), modulus, fpath)
    out.append(("pop", STRUCT))


def encode(
    model: SchemaModel,
    typ: Union[str, TypeRef],
    value: Any,
    *,
    modulus: int = STARK_PRIME,
) -> List[Event]:
    out: List[Event] = []
    _emit(out, model, as_type(model, typ), value, modulus, "$")
    return out


# ──────────────────────────────────────────────────────────────────────────────
# Decode
# ──────────────────────────────────────────────────────────────────────────────

class _Reader:
    def __init__(self, events: Sequence[Event], modulus: int) -> None:
        self.events = events
        self.pos = 0
        self.modulus = modulus

    def peek(self) -> Event:
        if self.pos >= len(self.events):
            raise Truncated("event stream ended early", offset=self.pos)
        ev = self.events[self.pos]
        if not isinstance(ev, (tuple, list)) or len(ev) != 2:
            raise DecodeError(f"malformed event {ev!r}", offset=self.pos)
        return ev[0], ev[1]

    def expect(self, op: str, arg: Any = None) -> Any:
        got_op, got_arg = self.peek()
        if got_op != op or (arg is not None and got_arg != arg):
            want = f"({op!r}, {arg!r})" if arg is not None else repr(op)
            raise DecodeError(f"expected {want}, got ({got_op!r}, {got_arg!r})", offset=self.pos)
        self.pos += 1
        return got_arg

    def value(self) -> Tuple[int, int]:
        at = self.pos
        return check_element(self.expect("value"), modulus=self.modulus, offset=at), at

    def at_pop(self, kind: str) -> bool:
        return self.peek() == ("pop", kind)


def _read(r: _Reader, model: SchemaModel, typ: TypeRef) -> Any:
    if isinstance(typ, Scalar):
        if typ.is_byte_string:
            n_full, at = r.value()
            elems = [n_full] + [r.value()[0] for _ in range(n_full + 2)]
            data, _ = unpack_byte_array(elems)
            return bytes_to_json(data, typ.kind, offset=at)
        e, at = r.value()
        return scalar_from_element(e, typ, modulus=r.modulus, offset=at)

    if isinstance(typ, OptionalOf):
        r.expect("push", OPTIONAL)
        if r.at_pop(OPTIONAL):
            r.pos += 1
            return None
        v = _read(r, model, typ.inner)
        r.expect("pop", OPTIONAL)
        return v

    if isinstance(typ, ArrayOf):
        r.expect("push", ARRAY)
        items = []
        while not r.at_pop(ARRAY):
            items.append(_read(r, model, typ.item))
        r.pos += 1
        return items

    if isinstance(typ, EnumRef):
        spec = model.enum(typ.name)
        r.expect("push", ENUM)
        idx, at = r.value()
        if idx >= len(spec.variants):
            raise InvalidEnumIndex(f"{typ.name} has {len(spec.variants)} variants, got index {idx}", offset=at)
        r.expect("pop", ENUM)
        return spec.variants[idx]

    spec = model.message(typ.name)
    r.expect("push", STRUCT)
    obj: Dict[str, Any] = {}
    for f in spec.fields:
        r.expect("key", f.name)
        obj[f.name] = _read(r, model, f.type)
    r.expect("pop", STRUCT)
    return obj


def decode(
    model: SchemaModel,
    typ: Union[str, TypeRef],
    events: Sequence[Event],
    *,
    modulus: int = STARK_PRIME,
) -> Any:
    r = _Reader(events, modulus)
    value = _read(r, model, as_type(model, typ))
    if r.pos != len(events):
        raise TrailingElements(
            f"{len(events) - r.pos} event(s) left after decoding",
            offset=r.pos,
            details={"remaining": len(events) - r.pos},
        )
    return value
