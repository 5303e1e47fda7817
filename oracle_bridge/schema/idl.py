"""
Definitions parser: proto3-style service/message text → :class:`SchemaModel`.

Accepted surface
----------------
    syntax = "proto3";
    package oracle.sqrt;

    enum Mode { MODE_FAST = 0; MODE_EXACT = 1; }

    message Request {
        uint64 n = 1;
        optional Inner x = 2;       // Optional<Inner>
        repeated int32 y = 3;       // Array<i32>
        message Inner { u32 inner = 1; }
    }

    service SqrtOracle {
        rpc Sqrt(Request) returns (Response);
    }

Field types are proto scalars (``uint32``, ``sint64``, ``string``, ...), the
VM's native names (``u8``..``u128``, ``i8``..``i128``, ``felt252``,
``ByteArray``) or references to declared messages/enums. Declaration order is
the wire order; field tags are checked for uniqueness and otherwise ignored.

Rejected with :class:`UnsupportedFieldKind`: ``map<K, V>`` fields, ``oneof``
blocks, ``float``/``double`` and streaming RPCs. ``import``, ``option``,
``reserved`` and ``extensions`` statements are skipped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ..errors import (DuplicateFieldName, DuplicateSelector, DuplicateTypeName,
                      ParseError, SelectorTooLong, UnknownTypeReference,
                      UnsupportedFieldKind)
from ..interfaces import DefinitionsSource, FileDefinitions
from ..logging import get_logger
from .naming import (MAX_SELECTOR_BYTES, path_for, selector_for,
                     strip_enum_prefix, upper_camel)
from .types import (ArrayOf, EnumRef, EnumSpec, FieldSpec, MessageRef,
                    MessageSpec, MethodSpec, OptionalOf, Scalar, SchemaModel,
                    ServiceSpec, TypeRef, check_recursion)

__all__ = ["load", "load_file", "SCALAR_ALIASES"]

log = get_logger("oracle_bridge.schema.idl")

# proto / VM-native scalar spellings → Scalar kind
SCALAR_ALIASES: Dict[str, str] = {
    "bool": "bool",
    "uint32": "u32",
    "fixed32": "u32",
    "uint64": "u64",
    "fixed64": "u64",
    "int32": "i32",
    "sint32": "i32",
    "sfixed32": "i32",
    "int64": "i64",
    "sint64": "i64",
    "sfixed64": "i64",
    "string": "string",
    "bytes": "bytes",
    "ByteArray": "string",
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
}

_UNSUPPORTED_SCALARS = {"float", "double"}


# ──────────────────────────────────────────────────────────────────────────────
# Tokenizer
# ──────────────────────────────────────────────────────────────────────────────

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<line_comment>//[^\n]*)
  | (?P<block_comment>/\*.*?\*/)
  | (?P<string>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
  | (?P<number>-?(?:0[xX][0-9a-fA-F]+|\d+))
  | (?P<ident>\.?[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
  | (?P<punct>[{}()\[\];=<>,])
    """,
    re.VERBOSE | re.DOTALL,
)


@dataclass(frozen=True)
class _Tok:
    kind: str
    value: str
    line: int
    column: int


def _int(tok: _Tok) -> int:
    v = tok.value
    neg = v.startswith("-")
    digits = v.lstrip("-")
    n = int(digits, 16) if digits[:2].lower() == "0x" else int(digits, 10)
    return -n if neg else n


def _tokenize(text: str) -> List[_Tok]:
    toks: List[_Tok] = []
    pos = 0
    line = 1
    line_start = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise ParseError(f"unexpected character {text[pos]!r}", line=line, column=pos - line_start + 1)
        kind = m.lastgroup or ""
        value = m.group(0)
        if kind not in ("ws", "line_comment", "block_comment"):
            toks.append(_Tok(kind, value, line, m.start() - line_start + 1))
        newlines = value.count("\n")
        if newlines:
            line += newlines
            line_start = m.start() + value.rindex("\n") + 1
        pos = m.end()
    return toks


# ──────────────────────────────────────────────────────────────────────────────
# Raw declarations (before name resolution)
# ──────────────────────────────────────────────────────────────────────────────


@dataclass
class _RawField:
    name: str
    label: Optional[str]
    type_name: str
    tag: int
    tok: _Tok


@dataclass
class _RawMessage:
    dotted: str
    scope: Tuple[str, ...]
    fields: List[_RawField] = field(default_factory=list)


@dataclass
class _RawEnum:
    dotted: str
    values: List[Tuple[str, int, _Tok]] = field(default_factory=list)


@dataclass
class _RawMethod:
    name: str
    request: str
    response: str
    tok: _Tok


@dataclass
class _RawService:
    name: str
    methods: List[_RawMethod] = field(default_factory=list)


class _Parser:
    def __init__(self, text: str) -> None:
        self.toks = _tokenize(text)
        self.i = 0
        self.package: Optional[str] = None
        self.messages: List[_RawMessage] = []
        self.enums: List[_RawEnum] = []
        self.services: List[_RawService] = []

    # ---- token helpers ----

    def _peek(self) -> Optional[_Tok]:
        return self.toks[self.i] if self.i < len(self.toks) else None

    def _next(self) -> _Tok:
        tok = self._peek()
        if tok is None:
            last = self.toks[-1] if self.toks else _Tok("eof", "", 1, 1)
            raise ParseError("unexpected end of definitions", line=last.line, column=last.column)
        self.i += 1
        return tok

    def _expect(self, value: Optional[str] = None, kind: Optional[str] = None) -> _Tok:
        tok = self._next()
        if (value is not None and tok.value != value) or (kind is not None and tok.kind != kind):
            want = value if value is not None else kind
            raise ParseError(f"expected {want!r}, got {tok.value!r}", line=tok.line, column=tok.column)
        return tok

    def _accept(self, value: str) -> bool:
        tok = self._peek()
        if tok is not None and tok.value == value:
            self.i += 1
            return True
        return False

    def _skip_statement(self) -> None:
        """Skip to the end of a ``;``-terminated statement (option/import/reserved)."""
        depth = 0
        while True:
            tok = self._next()
            if tok.value in ("[", "{", "("):
                depth += 1
            elif tok.value in ("]", "}", ")"):
                depth -= 1
            elif tok.value == ";" and depth <= 0:
                return

    def _skip_field_options(self) -> None:
        if self._accept("["):
            depth = 1
            while depth:
                tok = self._next()
                if tok.value == "[":
                    depth += 1
                elif tok.value == "]":
                    depth -= 1

    # ---- grammar ----

    def parse(self) -> None:
        while self._peek() is not None:
            tok = self._next()
            if tok.value == "syntax":
                self._expect("=")
                self._expect(kind="string")
                self._expect(";")
            elif tok.value == "package":
                self.package = self._expect(kind="ident").value.lstrip(".")
                self._expect(";")
            elif tok.value in ("import", "option"):
                self._skip_statement()
            elif tok.value == "message":
                self._message(())
            elif tok.value == "enum":
                self._enum(())
            elif tok.value == "service":
                self._service()
            elif tok.value == ";":
                continue
            else:
                raise ParseError(f"unexpected {tok.value!r} at top level", line=tok.line, column=tok.column)

    def _message(self, scope: Tuple[str, ...]) -> None:
        name_tok = self._expect(kind="ident")
        if "." in name_tok.value:
            raise ParseError("message names cannot be dotted", line=name_tok.line, column=name_tok.column)
        inner_scope = scope + (name_tok.value,)
        raw = _RawMessage(dotted=".".join(inner_scope), scope=inner_scope)
        self.messages.append(raw)
        self._expect("{")
        while not self._accept("}"):
            tok = self._next()
            if tok.value == "message":
                self._message(inner_scope)
            elif tok.value == "enum":
                self._enum(inner_scope)
            elif tok.value in ("option", "reserved", "extensions"):
                self._skip_statement()
            elif tok.value == ";":
                continue
            elif tok.value == "oneof":
                oneof = self._expect(kind="ident")
                raise UnsupportedFieldKind(owner=raw.dotted, name=oneof.value, kind="oneof")
            elif tok.value == "map":
                self._expect("<")
                key = self._expect(kind="ident").value
                self._expect(",")
                val = self._expect(kind="ident").value
                self._expect(">")
                fname = self._expect(kind="ident")
                raise UnsupportedFieldKind(owner=raw.dotted, name=fname.value, kind=f"map<{key}, {val}>")
            elif tok.kind == "ident":
                raw.fields.append(self._field(raw, tok))
            else:
                raise ParseError(f"unexpected {tok.value!r} in message {raw.dotted}", line=tok.line, column=tok.column)

    def _field(self, owner: _RawMessage, first: _Tok) -> _RawField:
        label: Optional[str] = None
        type_tok = first
        if first.value in ("optional", "repeated", "required"):
            label = first.value
            type_tok = self._expect(kind="ident")
        if type_tok.value in _UNSUPPORTED_SCALARS:
            fname = self._peek()
            raise UnsupportedFieldKind(
                owner=owner.dotted,
                name=fname.value if fname is not None else "?",
                kind=type_tok.value,
            )
        name_tok = self._expect(kind="ident")
        self._expect("=")
        tag_tok = self._expect(kind="number")
        self._skip_field_options()
        self._expect(";")
        return _RawField(
            name=name_tok.value,
            label=label,
            type_name=type_tok.value,
            tag=_int(tag_tok),
            tok=name_tok,
        )

    def _enum(self, scope: Tuple[str, ...]) -> None:
        name_tok = self._expect(kind="ident")
        raw = _RawEnum(dotted=".".join(scope + (name_tok.value,)))
        self.enums.append(raw)
        self._expect("{")
        while not self._accept("}"):
            tok = self._next()
            if tok.value in ("option", "reserved"):
                self._skip_statement()
                continue
            if tok.value == ";":
                continue
            if tok.kind != "ident":
                raise ParseError(f"unexpected {tok.value!r} in enum {raw.dotted}", line=tok.line, column=tok.column)
            self._expect("=")
            number = self._expect(kind="number")
            self._skip_field_options()
            self._expect(";")
            raw.values.append((tok.value, _int(number), tok))

    def _service(self) -> None:
        name_tok = self._expect(kind="ident")
        raw = _RawService(name=name_tok.value)
        self.services.append(raw)
        self._expect("{")
        while not self._accept("}"):
            tok = self._next()
            if tok.value == "option":
                self._skip_statement()
                continue
            if tok.value == ";":
                continue
            if tok.value != "rpc":
                raise ParseError(f"expected 'rpc', got {tok.value!r}", line=tok.line, column=tok.column)
            mname = self._expect(kind="ident")
            request = self._rpc_type(raw, mname)
            self._expect("returns")
            response = self._rpc_type(raw, mname)
            if self._accept("{"):
                while not self._accept("}"):
                    self._skip_statement()
            else:
                self._expect(";")
            raw.methods.append(_RawMethod(mname.value, request, response, mname))

    def _rpc_type(self, service: _RawService, method: _Tok) -> str:
        self._expect("(")
        tok = self._expect(kind="ident")
        if tok.value == "stream":
            raise UnsupportedFieldKind(owner=service.name, name=method.value, kind="streaming rpc")
        self._expect(")")
        return tok.value


# ──────────────────────────────────────────────────────────────────────────────
# Resolution
# ──────────────────────────────────────────────────────────────────────────────


def _flat_name(dotted: str) -> str:
    """``Outer.Inner`` → ``OuterInner``; top-level names are kept as written."""
    return "".join(dotted.split("."))


class _Resolver:
    def __init__(self, parser: _Parser) -> None:
        self.package = parser.package
        self.kinds: Dict[str, str] = {}  # dotted -> "message" | "enum"
        flat_seen: Dict[str, str] = {}
        for raw in [*parser.messages, *parser.enums]:
            kind = "message" if isinstance(raw, _RawMessage) else "enum"
            flat = _flat_name(raw.dotted)
            if raw.dotted in self.kinds or flat in flat_seen:
                raise DuplicateTypeName(flat)
            self.kinds[raw.dotted] = kind
            flat_seen[flat] = raw.dotted

    def resolve(self, ref: str, scope: Tuple[str, ...], owner: str) -> TypeRef:
        if ref in SCALAR_ALIASES:
            return Scalar(SCALAR_ALIASES[ref])
        name = ref.lstrip(".")
        if self.package and name.startswith(self.package + "."):
            name = name[len(self.package) + 1:]
        # innermost scope outwards, then global
        for depth in range(len(scope), -1, -1):
            candidate = ".".join(scope[:depth] + (name,))
            kind = self.kinds.get(candidate)
            if kind == "message":
                return MessageRef(_flat_name(candidate))
            if kind == "enum":
                return EnumRef(_flat_name(candidate))
        raise UnknownTypeReference(owner=owner, reference=ref)


def _build_message(raw: _RawMessage, resolver: _Resolver) -> MessageSpec:
    owner = _flat_name(raw.dotted)
    names: set[str] = set()
    tags: set[int] = set()
    fields: List[FieldSpec] = []
    for f in raw.fields:
        if f.name in names:
            raise DuplicateFieldName(owner=owner, name=f.name)
        if f.tag in tags:
            raise ParseError(f"{owner}: field number {f.tag} reused by {f.name!r}", line=f.tok.line, column=f.tok.column)
        names.add(f.name)
        tags.add(f.tag)
        ty: TypeRef = resolver.resolve(f.type_name, raw.scope, owner)
        if f.label == "repeated":
            ty = ArrayOf(ty)
        elif f.label == "optional":
            ty = OptionalOf(ty)
        fields.append(FieldSpec(f.name, ty))
    return MessageSpec(owner, tuple(fields))


def _build_enum(raw: _RawEnum) -> EnumSpec:
    owner = _flat_name(raw.dotted)
    prefix = upper_camel(raw.dotted.split(".")[-1])
    numbers: set[int] = set()
    variants: List[str] = []
    for proto_name, number, tok in raw.values:
        # allow_alias duplicates share the first variant's slot
        if number in numbers:
            continue
        numbers.add(number)
        variant = strip_enum_prefix(prefix, upper_camel(proto_name))
        if variant in variants:
            raise DuplicateFieldName(owner=owner, name=variant)
        variants.append(variant)
    return EnumSpec(owner, tuple(variants))


def _build_services(parser: _Parser, resolver: _Resolver) -> Dict[str, ServiceSpec]:
    services: Dict[str, ServiceSpec] = {}
    selectors: set[str] = set()
    for raw in parser.services:
        if raw.name in services or raw.name in resolver.kinds:
            raise DuplicateTypeName(raw.name)
        methods: Dict[str, MethodSpec] = {}
        for m in raw.methods:
            if m.name in methods:
                raise DuplicateFieldName(owner=raw.name, name=m.name)
            req = resolver.resolve(m.request, (), f"{raw.name}.{m.name}")
            resp = resolver.resolve(m.response, (), f"{raw.name}.{m.name}")
            for ref, which in ((req, m.request), (resp, m.response)):
                if not isinstance(ref, MessageRef):
                    raise UnknownTypeReference(owner=f"{raw.name}.{m.name}", reference=which)
            selector = selector_for(m.name)
            if len(selector.encode("ascii", "replace")) > MAX_SELECTOR_BYTES:
                raise SelectorTooLong(selector, MAX_SELECTOR_BYTES)
            if selector in selectors:
                raise DuplicateSelector(selector)
            selectors.add(selector)
            methods[m.name] = MethodSpec(
                service=raw.name,
                name=m.name,
                selector=selector,
                path=path_for(m.name),
                request=req.name,  # type: ignore[union-attr]
                response=resp.name,  # type: ignore[union-attr]
            )
        services[raw.name] = ServiceSpec(raw.name, methods)
    return services


# ──────────────────────────────────────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────────────────────────────────────


def load(definitions: Union[str, DefinitionsSource]) -> SchemaModel:
    """
    Parse definitions text (or anything with a ``read() -> str`` method) into
    an immutable :class:`SchemaModel`.

    Raises a :class:`SchemaError` subclass on malformed or unsupported input.
    """
    text = definitions if isinstance(definitions, str) else definitions.read()
    parser = _Parser(text)
    parser.parse()
    resolver = _Resolver(parser)

    messages = {}
    for raw in parser.messages:
        spec = _build_message(raw, resolver)
        messages[spec.name] = spec
    enums = {}
    for raw_enum in parser.enums:
        espec = _build_enum(raw_enum)
        enums[espec.name] = espec
    services = _build_services(parser, resolver)

    model = SchemaModel(messages=messages, enums=enums, services=services, package=parser.package)
    check_recursion(model)
    log.debug(
        "definitions loaded",
        extra={"messages": len(messages), "enums": len(enums), "services": len(services)},
    )
    return model


def load_file(path: Union[str, Path]) -> SchemaModel:
    return load(FileDefinitions(Path(path)))
