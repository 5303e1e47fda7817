"""
Field elements and scalar coercion.

A field element is an integer in ``[0, modulus)``. Scalars map onto exactly one
element:

- ``bool``         0 / 1
- ``uN``           ``0 <= v < 2**N``
- ``iN``           ``-2**(N-1) <= v < 2**(N-1)``; negatives carried as ``modulus + v``
- ``felt252``      ``0 <= v < modulus``

Decoding reads any element above ``(modulus - 1) // 2`` as negative for signed
kinds, which is how the VM's own integer deserializer behaves.
"""

from __future__ import annotations

import re
from typing import Any

from ..config import STARK_PRIME
from ..errors import ElementOutOfRange, RangeOverflow, TypeMismatch
from ..schema.types import Scalar

__all__ = [
    "STARK_PRIME",
    "parse_json_int",
    "check_element",
    "scalar_to_element",
    "scalar_from_element",
]

_DEC_RE = re.compile(r"^-?[0-9]+$")
_HEX_RE = re.compile(r"^-?0x[0-9a-fA-F]+$")


def parse_json_int(value: Any, *, path: str = "$") -> int:
    """
    JSON integer, or a string of decimal / ``0x`` hex digits (for values beyond
    what JSON numbers carry safely). Booleans and non-integral floats are rejected.
    """
    if isinstance(value, bool):
        raise TypeMismatch("expected integer, got boolean", path=path)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        s = value.strip()
        if _DEC_RE.match(s):
            return int(s, 10)
        if _HEX_RE.match(s):
            return int(s, 16)
        raise TypeMismatch(f"expected integer string, got {value!r}", path=path)
    raise TypeMismatch(f"expected integer, got {type(value).__name__}", path=path)


def check_element(element: Any, *, modulus: int = STARK_PRIME, offset: int = 0) -> int:
    if isinstance(element, bool) or not isinstance(element, int):
        raise ElementOutOfRange(
            f"element is not an integer: {element!r}", offset=offset
        )
    if not 0 <= element < modulus:
        raise ElementOutOfRange(
            "element outside the field", offset=offset, details={"element": element}
        )
    return element


# ──────────────────────────────────────────────────────────────────────────────
# Encode side
# ──────────────────────────────────────────────────────────────────────────────

def scalar_to_element(value: Any, scalar: Scalar, *, modulus: int = STARK_PRIME, path: str = "$") -> int:
    """Integer-like scalar (bool, uN, iN, felt252) → one field element."""
    kind = scalar.kind
    if kind == "bool":
        if not isinstance(value, bool):
            raise TypeMismatch(f"expected boolean, got {type(value).__name__}", path=path)
        return 1 if value else 0

    v = parse_json_int(value, path=path)
    if kind == "felt252":
        if not 0 <= v < modulus:
            raise RangeOverflow("felt252 value out of range [0, modulus)", path=path, details={"value": v})
        return v

    bits = scalar.bits
    if scalar.signed:
        lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        lo, hi = 0, (1 << bits) - 1
    if not lo <= v <= hi:
        raise RangeOverflow(
            f"{kind} out of range [{lo}, {hi}]", path=path, details={"value": v}
        )
    return v % modulus


# ──────────────────────────────────────────────────────────────────────────────
# Decode side
# ──────────────────────────────────────────────────────────────────────────────

def scalar_from_element(element: int, scalar: Scalar, *, modulus: int = STARK_PRIME, offset: int = 0) -> Any:
    """One field element → JSON value for ``scalar``. ``element`` must already be in the field."""
    kind = scalar.kind
    if kind == "bool":
        if element not in (0, 1):
            raise ElementOutOfRange(
                "bool element must be 0 or 1", offset=offset, details={"element": element}
            )
        return element == 1
    if kind == "felt252":
        return element

    bits = scalar.bits
    if scalar.signed:
        v = element - modulus if element > (modulus - 1) // 2 else element
        lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        v = element
        lo, hi = 0, (1 << bits) - 1
    if not lo <= v <= hi:
        raise ElementOutOfRange(
            f"element does not fit {kind}", offset=offset, details={"element": element}
        )
    return v
