"""
Cairo emitter for VM-side declarations.

The output mirrors the schema exactly: one struct per message with fields in
declared order, one enum per EnumSpec with variants in declared order, and one
``#[generate_trait]`` impl per service. The VM's derived ``Serde`` then
produces the same flat element sequence the host codec reads:

- structs serialize their fields back to back
- enums serialize the variant index (plus payload, none here)
- ``Array<T>`` serializes its length then each item
- ``ByteArray`` serializes ``[n_full_words, words.., pending_word, pending_len]``

``Option<T>`` is not used for optional fields: its derived encoding puts
``Some`` at index 0, while the bridge reserves 0 for "absent". Optional fields
use the generated ``Maybe<T>`` enum (``Absent`` = 0, ``Present`` = 1) instead.
"""

from __future__ import annotations

from typing import List, Optional

from ..schema.lock import schema_hash_felt
from ..schema.types import (ArrayOf, EnumRef, MessageRef, OptionalOf, Scalar,
                            SchemaModel, TypeRef)

__all__ = ["CAIRO_KEYWORDS", "cairo_ident", "cairo_type", "emit_cairo"]

CAIRO_KEYWORDS = {
    "as", "break", "const", "continue", "do", "dyn", "else", "enum", "extern", "false", "fn",
    "for", "hint", "if", "impl", "implicits", "in", "let", "loop", "macro", "match", "mod",
    "move", "mut", "nopanic", "of", "pub", "ref", "return", "self", "Self", "static", "struct",
    "super", "trait", "true", "try", "type", "typeof", "use", "where", "while", "yield",
}

_SCALAR_TYPES = {
    "bool": "bool",
    "u8": "u8",
    "u16": "u16",
    "u32": "u32",
    "u64": "u64",
    "u128": "u128",
    "i8": "i8",
    "i16": "i16",
    "i32": "i32",
    "i64": "i64",
    "i128": "i128",
    "felt252": "felt252",
    "string": "ByteArray",
    "bytes": "ByteArray",
}

_MAYBE = [
    "/// Optional value with the bridge's presence layout: Absent = 0, Present = 1.\n",
    "#[derive(Drop, Serde)]\n",
    "enum Maybe<T> {\n",
    "    Absent: (),\n",
    "    Present: T,\n",
    "}\n",
]


def cairo_ident(s: str) -> str:
    s2 = "".join(ch if (ch.isalnum() or ch == "_") else "_" for ch in s.strip())
    if not s2:
        s2 = "x"
    if s2 in CAIRO_KEYWORDS:
        s2 += "_"
    if s2[0].isdigit():
        s2 = "_" + s2
    return s2


def cairo_type(t: TypeRef) -> str:
    if isinstance(t, Scalar):
        return _SCALAR_TYPES[t.kind]
    if isinstance(t, OptionalOf):
        return f"Maybe<{cairo_type(t.inner)}>"
    if isinstance(t, ArrayOf):
        return f"Array<{cairo_type(t.item)}>"
    if isinstance(t, (MessageRef, EnumRef)):
        return cairo_ident(t.name)
    raise TypeError(f"unsupported type reference: {t!r}")


def _uses_optional(t: TypeRef) -> bool:
    if isinstance(t, OptionalOf):
        return True
    if isinstance(t, ArrayOf):
        return _uses_optional(t.item)
    return False


def emit_cairo(model: SchemaModel, schema_hash: str, *, source: Optional[str] = None) -> str:
    origin = source or model.package or "oracle definitions"
    lines: List[str] = []
    lines.append(f"// This file was generated by oracle-bridge from {origin}. Do not edit by hand.\n")
    lines.append("use starknet::testing::cheatcode;\n\n")
    lines.append(f"// {schema_hash}\n")
    lines.append(f"const SCHEMA_HASH: felt252 = {hex(schema_hash_felt(schema_hash))};\n\n")

    if any(_uses_optional(f.type) for m in model.messages.values() for f in m.fields):
        lines.extend(_MAYBE)
        lines.append("\n")

    for spec in model.enums.values():
        lines.append("#[derive(Drop, Serde, PartialEq)]\n")
        lines.append(f"enum {cairo_ident(spec.name)} {{\n")
        for variant in spec.variants:
            lines.append(f"    {cairo_ident(variant)},\n")
        lines.append("}\n\n")

    for spec in model.messages.values():
        lines.append("#[derive(Drop, Serde)]\n")
        lines.append(f"struct {cairo_ident(spec.name)} {{\n")
        for f in spec.fields:
            lines.append(f"    {cairo_ident(f.name)}: {cairo_type(f.type)},\n")
        lines.append("}\n\n")

    for service in model.services.values():
        name = cairo_ident(service.name)
        lines.append("#[generate_trait]\n")
        lines.append(f"impl {name} of {name}Trait {{\n")
        for m in service.methods.values():
            lines.append(
                f"    fn {cairo_ident(m.selector)}(arg: {cairo_ident(m.request)}) -> {cairo_ident(m.response)} {{\n"
            )
            lines.append("        let mut serialized = ArrayTrait::new();\n")
            lines.append("        arg.serialize(ref serialized);\n")
            lines.append(f"        let mut result = cheatcode::<'{m.selector}'>(serialized.span());\n")
            lines.append("        Serde::deserialize(ref result).unwrap()\n")
            lines.append("    }\n")
        lines.append("}\n\n")

    return "".join(lines).rstrip("\n") + "\n"
