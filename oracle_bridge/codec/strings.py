"""
Byte strings in the VM's ByteArray layout.

    [n_full_words, word_0, ..., word_{n-1}, pending_word, pending_len]

Each full word packs 31 bytes big-endian; the trailing ``pending_len < 31``
bytes go into ``pending_word``. ``string`` fields carry UTF-8 text on the JSON
side, ``bytes`` fields a ``0x``-prefixed hex string.
"""

from __future__ import annotations

from typing import Any, List, Sequence, Tuple

from ..errors import ElementOutOfRange, Truncated, TypeMismatch

WORD_BYTES = 31

__all__ = [
    "WORD_BYTES",
    "pack_byte_array",
    "unpack_byte_array",
    "json_to_bytes",
    "bytes_to_json",
]


def pack_byte_array(data: bytes) -> List[int]:
    n_full = len(data) // WORD_BYTES
    out = [n_full]
    for i in range(n_full):
        out.append(int.from_bytes(data[i * WORD_BYTES:(i + 1) * WORD_BYTES], "big"))
    pending = data[n_full * WORD_BYTES:]
    out.append(int.from_bytes(pending, "big") if pending else 0)
    out.append(len(pending))
    return out


def unpack_byte_array(elements: Sequence[int], offset: int = 0) -> Tuple[bytes, int]:
    """
    Read one ByteArray starting at ``offset``. Returns ``(data, new_offset)``.
    Elements are expected to be range-checked against the field already.
    """
    if offset >= len(elements):
        raise Truncated("missing ByteArray word count", offset=offset)
    n_full = elements[offset]
    pos = offset + 1
    # n_full words + pending_word + pending_len
    if n_full > len(elements) - pos - 2:
        raise Truncated(
            f"ByteArray declares {n_full} words but the sequence is shorter", offset=offset
        )
    buf = bytearray()
    for _ in range(n_full):
        word = elements[pos]
        if word >= 1 << (8 * WORD_BYTES):
            raise ElementOutOfRange("ByteArray word exceeds 31 bytes", offset=pos)
        buf += word.to_bytes(WORD_BYTES, "big")
        pos += 1
    pending_word, pending_len = elements[pos], elements[pos + 1]
    if pending_len >= WORD_BYTES:
        raise ElementOutOfRange(
            f"ByteArray pending length must be < {WORD_BYTES}", offset=pos + 1
        )
    if pending_word >= 1 << (8 * pending_len):
        raise ElementOutOfRange("ByteArray pending word wider than its length", offset=pos)
    if pending_len:
        buf += pending_word.to_bytes(pending_len, "big")
    return bytes(buf), pos + 2


def json_to_bytes(value: Any, kind: str, *, path: str = "$") -> bytes:
    if not isinstance(value, str):
        raise TypeMismatch(f"expected {kind} as a JSON string, got {type(value).__name__}", path=path)
    if kind == "string":
        return value.encode("utf-8")
    if not value.startswith("0x"):
        raise TypeMismatch("bytes must be a 0x-prefixed hex string", path=path)
    h = value[2:]
    if len(h) % 2:
        raise TypeMismatch("hex string must have an even number of digits", path=path)
    try:
        return bytes.fromhex(h)
    except ValueError as e:
        raise TypeMismatch(f"invalid hex: {e}", path=path) from e


def bytes_to_json(data: bytes, kind: str, *, offset: int = 0) -> str:
    if kind == "string":
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ElementOutOfRange(f"string is not valid UTF-8: {e}", offset=offset) from e
    return "0x" + data.hex()
