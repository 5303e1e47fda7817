"""
Flat decoder: field elements → JSON value. Inverse of :mod:`.encoding`.

Top-level:
- decode(model, typ, elements, cursor=0) -> (value, consumed)
- decode_exact(model, typ, elements) -> value

``decode`` reads from ``cursor`` and reports how many elements it consumed;
``decode_exact`` additionally requires the sequence to be exhausted and raises
:class:`TrailingElements` otherwise. Positions carry no tags, so decoding with a
different schema than the producer used is only caught by length and range
checks.
"""

from __future__ import annotations

from typing import Any, Dict, Sequence, Tuple, Union

from ..config import STARK_PRIME
from ..errors import (ElementOutOfRange, InvalidEnumIndex, InvalidPresence,
                      TrailingElements, Truncated)
from ..schema.types import (ArrayOf, EnumRef, MessageRef, OptionalOf, Scalar,
                            SchemaModel, TypeRef)
from .encoding import as_type
from .felt import check_element, scalar_from_element
from .strings import bytes_to_json, unpack_byte_array

__all__ = ["decode", "decode_exact", "decode_at", "min_width"]

# Array lengths are u32 on the VM side.
MAX_ARRAY_LEN = (1 << 32) - 1


def min_width(model: SchemaModel, typ: TypeRef) -> int:
    """Fewest elements any value of ``typ`` can occupy."""
    if isinstance(typ, Scalar):
        return 3 if typ.is_byte_string else 1
    if isinstance(typ, (OptionalOf, ArrayOf, EnumRef)):
        return 1
    return sum(min_width(model, f.type) for f in model.message(typ.name).fields)


def _take(elements: Sequence[int], pos: int, modulus: int, what: str) -> int:
    if pos >= len(elements):
        raise Truncated(f"sequence ended while reading {what}", offset=pos)
    return check_element(elements[pos], modulus=modulus, offset=pos)


def decode_at(
    model: SchemaModel,
    typ: TypeRef,
    elements: Sequence[int],
    pos: int,
    *,
    modulus: int = STARK_PRIME,
) -> Tuple[Any, int]:
    """Decode one value at ``pos``. Returns ``(value, new_pos)``."""
    if isinstance(typ, Scalar):
        if typ.is_byte_string:
            n_full = _take(elements, pos, modulus, "ByteArray word count")
            for i in range(pos + 1, min(len(elements), pos + 3 + n_full)):
                check_element(elements[i], modulus=modulus, offset=i)
            data, new_pos = unpack_byte_array(elements, pos)
            return bytes_to_json(data, typ.kind, offset=pos), new_pos
        e = _take(elements, pos, modulus, typ.kind)
        return scalar_from_element(e, typ, modulus=modulus, offset=pos), pos + 1

    if isinstance(typ, OptionalOf):
        flag = _take(elements, pos, modulus, "presence flag")
        if flag == 0:
            return None, pos + 1
        if flag != 1:
            raise InvalidPresence(f"presence element must be 0 or 1, got {flag}", offset=pos)
        return decode_at(model, typ.inner, elements, pos + 1, modulus=modulus)

    if isinstance(typ, ArrayOf):
        n = _take(elements, pos, modulus, "array length")
        if n > MAX_ARRAY_LEN:
            raise ElementOutOfRange("array length does not fit u32", offset=pos, details={"length": n})
        pos += 1
        width = min_width(model, typ.item)
        if width and n * width > len(elements) - pos:
            raise Truncated(
                f"array of {n} items needs at least {n * width} elements, {len(elements) - pos} left",
                offset=pos,
            )
        items = []
        for _ in range(n):
            item, pos = decode_at(model, typ.item, elements, pos, modulus=modulus)
            items.append(item)
        return items, pos

    if isinstance(typ, EnumRef):
        spec = model.enum(typ.name)
        idx = _take(elements, pos, modulus, f"{typ.name} index")
        if idx >= len(spec.variants):
            raise InvalidEnumIndex(
                f"{typ.name} has {len(spec.variants)} variants, got index {idx}", offset=pos
            )
        return spec.variants[idx], pos + 1

    spec = model.message(typ.name)
    obj: Dict[str, Any] = {}
    for f in spec.fields:
        obj[f.name], pos = decode_at(model, f.type, elements, pos, modulus=modulus)
    return obj, pos


def decode(
    model: SchemaModel,
    typ: Union[str, TypeRef],
    elements: Sequence[int],
    cursor: int = 0,
    *,
    modulus: int = STARK_PRIME,
) -> Tuple[Any, int]:
    value, end = decode_at(model, as_type(model, typ), elements, cursor, modulus=modulus)
    return value, end - cursor


def decode_exact(
    model: SchemaModel,
    typ: Union[str, TypeRef],
    elements: Sequence[int],
    *,
    modulus: int = STARK_PRIME,
) -> Any:
    """Decode a whole sequence; leftovers mean the two sides disagree on the schema."""
    value, consumed = decode(model, typ, elements, 0, modulus=modulus)
    if consumed != len(elements):
        raise TrailingElements(
            f"{len(elements) - consumed} element(s) left after decoding",
            offset=consumed,
            details={"remaining": len(elements) - consumed},
        )
    return value
