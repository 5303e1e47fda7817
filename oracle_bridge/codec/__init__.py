"""
oracle_bridge.codec
===================

Conversion between JSON values and the VM's flat, position-only field-element
encoding. Everything here is pure: no I/O, no VM dependency.

- :func:`encode` / :func:`decode` / :func:`decode_exact`: flat buffer backend
- :mod:`oracle_bridge.codec.stream`: push/pop event backend with the same contract
"""

from .felt import STARK_PRIME, check_element, parse_json_int
from .encoding import encode, encode_into
from .decoding import decode, decode_at, decode_exact, min_width
from .strings import WORD_BYTES, pack_byte_array, unpack_byte_array
from . import stream

__all__ = [
    "STARK_PRIME",
    "check_element",
    "parse_json_int",
    "encode",
    "encode_into",
    "decode",
    "decode_at",
    "decode_exact",
    "min_width",
    "WORD_BYTES",
    "pack_byte_array",
    "unpack_byte_array",
    "stream",
]
