"""
Schema model for the oracle bridge.

The type graph mirrors what the VM can serialize natively:

  - scalars: ``bool``, ``u8``..``u128``, ``i8``..``i128``, ``felt252`` and the
    two byte-string kinds ``string`` (UTF-8 text) and ``bytes`` (0x-hex)
  - ``MessageRef``  ordered fields, flat concatenation on the wire
  - ``EnumRef``     ordered variant names, one index element on the wire
  - ``OptionalOf``  presence element + inner encoding
  - ``ArrayOf``     length element + repeated inner encoding

Instances are immutable. A :class:`SchemaModel` is built once (by
``oracle_bridge.schema.idl.load`` or ``oracle_bridge.schema.lock.load_lock``)
and then shared read-only by codegen, the codecs and the dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import (Any, Dict, Iterator, List, Mapping, Optional, Set, Tuple,
                    Union)

from ..errors import MethodNotFound, SchemaError, UnsupportedFieldKind

__all__ = [
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
    "check_recursion",
]


# ──────────────────────────────────────────────────────────────────────────────
# Scalars
# ──────────────────────────────────────────────────────────────────────────────

# name -> (bits, signed). ``felt252`` is bounded by the field modulus instead of
# a bit width; ``string``/``bytes`` are length-prefixed word sequences.
SCALAR_KINDS: Mapping[str, Tuple[int, bool]] = MappingProxyType(
    {
        "bool": (1, False),
        "u8": (8, False),
        "u16": (16, False),
        "u32": (32, False),
        "u64": (64, False),
        "u128": (128, False),
        "i8": (8, True),
        "i16": (16, True),
        "i32": (32, True),
        "i64": (64, True),
        "i128": (128, True),
        "felt252": (252, False),
        "string": (0, False),
        "bytes": (0, False),
    }
)


@dataclass(frozen=True)
class Scalar:
    kind: str

    def __post_init__(self) -> None:
        if self.kind not in SCALAR_KINDS:
            raise SchemaError(f"unknown scalar kind {self.kind!r}", details={"kind": self.kind})

    @property
    def bits(self) -> int:
        return SCALAR_KINDS[self.kind][0]

    @property
    def signed(self) -> bool:
        return SCALAR_KINDS[self.kind][1]

    @property
    def is_integer(self) -> bool:
        return self.kind not in ("bool", "felt252", "string", "bytes")

    @property
    def is_byte_string(self) -> bool:
        return self.kind in ("string", "bytes")

    def to_dict(self) -> Dict[str, Any]:
        return {"scalar": self.kind}


# ──────────────────────────────────────────────────────────────────────────────
# Named and composite references
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MessageRef:
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.name}


@dataclass(frozen=True)
class EnumRef:
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"enum": self.name}


@dataclass(frozen=True)
class OptionalOf:
    inner: "TypeRef"

    def to_dict(self) -> Dict[str, Any]:
        return {"optional": self.inner.to_dict()}


@dataclass(frozen=True)
class ArrayOf:
    item: "TypeRef"

    def to_dict(self) -> Dict[str, Any]:
        return {"array": self.item.to_dict()}


TypeRef = Union[Scalar, MessageRef, EnumRef, OptionalOf, ArrayOf]


def type_from_dict(d: Any) -> TypeRef:
    """Inverse of ``TypeRef.to_dict()``; used when reloading a lock artifact."""
    if not isinstance(d, dict) or len(d) != 1:
        raise SchemaError(f"malformed type descriptor: {d!r}")
    (tag, value), = d.items()
    if tag == "scalar":
        return Scalar(str(value))
    if tag == "message":
        return MessageRef(str(value))
    if tag == "enum":
        return EnumRef(str(value))
    if tag == "optional":
        return OptionalOf(type_from_dict(value))
    if tag == "array":
        return ArrayOf(type_from_dict(value))
    raise SchemaError(f"unknown type descriptor tag {tag!r}")


# ──────────────────────────────────────────────────────────────────────────────
# Declarations
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldSpec:
    name: str
    type: TypeRef

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type.to_dict()}


@dataclass(frozen=True)
class MessageSpec:
    """Ordered fields. The order is the only thing giving wire positions meaning."""

    name: str
    fields: Tuple[FieldSpec, ...] = ()

    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)


@dataclass(frozen=True)
class EnumSpec:
    name: str
    variants: Tuple[str, ...] = ()

    def index_of(self, variant: str) -> Optional[int]:
        try:
            return self.variants.index(variant)
        except ValueError:
            return None


@dataclass(frozen=True)
class MethodSpec:
    service: str
    name: str
    selector: str  # short string the VM raises the request with
    path: str      # request path segment, lowercased method name
    request: str
    response: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selector": self.selector,
            "path": self.path,
            "request": self.request,
            "response": self.response,
        }


@dataclass(frozen=True)
class ServiceSpec:
    name: str
    methods: Mapping[str, MethodSpec] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "methods", MappingProxyType(dict(self.methods)))


# ──────────────────────────────────────────────────────────────────────────────
# The model
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True, eq=False)
class SchemaModel:
    messages: Mapping[str, MessageSpec]
    enums: Mapping[str, EnumSpec]
    services: Mapping[str, ServiceSpec]
    package: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", MappingProxyType(dict(self.messages)))
        object.__setattr__(self, "enums", MappingProxyType(dict(self.enums)))
        object.__setattr__(self, "services", MappingProxyType(dict(self.services)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SchemaModel):
            return NotImplemented
        return (
            self.package == other.package
            and dict(self.messages) == dict(other.messages)
            and dict(self.enums) == dict(other.enums)
            and {k: dict(v.methods) for k, v in self.services.items()}
            == {k: dict(v.methods) for k, v in other.services.items()}
        )

    __hash__ = None  # type: ignore[assignment]

    # ---- lookups ----

    def message(self, name: str) -> MessageSpec:
        try:
            return self.messages[name]
        except KeyError:
            raise SchemaError(f"unknown message type {name!r}", details={"name": name}) from None

    def enum(self, name: str) -> EnumSpec:
        try:
            return self.enums[name]
        except KeyError:
            raise SchemaError(f"unknown enum type {name!r}", details={"name": name}) from None

    def type_ref(self, name: str) -> TypeRef:
        """Named type (message, enum or scalar kind) as a :data:`TypeRef`."""
        if name in self.messages:
            return MessageRef(name)
        if name in self.enums:
            return EnumRef(name)
        if name in SCALAR_KINDS:
            return Scalar(name)
        raise SchemaError(f"unknown type {name!r}", details={"name": name})

    def iter_methods(self) -> Iterator[MethodSpec]:
        for service in self.services.values():
            yield from service.methods.values()

    def resolve_method(self, service: str, method: str) -> Tuple[MessageRef, MessageRef]:
        """
        Return the (request, response) types of ``service.method``.

        ``method`` may be given as declared (``Sqrt``), as its selector
        (``sqrt``) or as its request path.
        """
        spec = self.services.get(service)
        if spec is None:
            raise MethodNotFound(method, service=service)
        found = spec.methods.get(method)
        if found is None:
            for m in spec.methods.values():
                if method in (m.selector, m.path):
                    found = m
                    break
        if found is None:
            raise MethodNotFound(method, service=service)
        return MessageRef(found.request), MessageRef(found.response)

    def find_selector(self, selector: str) -> MethodSpec:
        for m in self.iter_methods():
            if m.selector == selector:
                return m
        raise MethodNotFound(selector)

    def wire_compatible(self, a: str, b: str) -> bool:
        """
        Two messages are wire-compatible iff their field-type sequences are
        structurally equal in order. Nested messages are compared by layout, not
        by name; enums match when they have the same number of variants.
        """
        return self._same_layout(MessageRef(self.message(a).name), MessageRef(self.message(b).name), set())

    def _same_layout(self, x: TypeRef, y: TypeRef, seen: Set[Tuple[str, str]]) -> bool:
        if isinstance(x, Scalar) and isinstance(y, Scalar):
            return x.kind == y.kind
        if isinstance(x, EnumRef) and isinstance(y, EnumRef):
            return len(self.enum(x.name).variants) == len(self.enum(y.name).variants)
        if isinstance(x, OptionalOf) and isinstance(y, OptionalOf):
            return self._same_layout(x.inner, y.inner, seen)
        if isinstance(x, ArrayOf) and isinstance(y, ArrayOf):
            return self._same_layout(x.item, y.item, seen)
        if isinstance(x, MessageRef) and isinstance(y, MessageRef):
            # a pair already under comparison holds unless another position disagrees
            if (x.name, y.name) in seen:
                return True
            seen.add((x.name, y.name))
            fx, fy = self.message(x.name).fields, self.message(y.name).fields
            return len(fx) == len(fy) and all(
                self._same_layout(p.type, q.type, seen) for p, q in zip(fx, fy)
            )
        return False


def check_recursion(model: SchemaModel) -> None:
    """
    Reject messages that contain themselves through plain message fields.

    Such a type has no finite value: the VM cannot lay it out and the decoder
    cannot size it. A cycle through an ``Optional`` or ``Array`` field is fine,
    since those end with an absent value or an empty array.
    """
    done: Set[str] = set()

    def visit(name: str, path: List[str]) -> None:
        if name in done:
            return
        path.append(name)
        for f in model.message(name).fields:
            if not isinstance(f.type, MessageRef):
                continue
            if f.type.name in path:
                raise UnsupportedFieldKind(owner=name, name=f.name, kind="recursive message")
            visit(f.type.name, path)
        path.pop()
        done.add(name)

    for name in model.messages:
        visit(name, [])
