"""
oracle_bridge.errors
--------------------

Exception hierarchy for the oracle bridge.

Every failure the bridge can produce, from a malformed definitions file up to a
rejected oracle response, is a :class:`BridgeError`. Errors carry a stable
upper-snake ``code`` and a small structured ``details`` dict so the VM runner
and the CLI can report them uniformly.

Families
~~~~~~~~
- SchemaError     malformed or unsupported definitions
- LockError       lock artifact missing, corrupted or drifted
- EncodeError     JSON -> elements (shape, range, enum name)
- DecodeError     elements -> JSON (truncation, range, enum index, trailing data)
- RoutingError    unknown method, unconfigured server address
- TransportError  connection failure / timeout
- ProtocolError   malformed or rejecting response envelope
- CodegenIOError  generated files could not be written
- ConfigError     invalid configuration values

:class:`DispatchFailed` wraps any of the above with the dispatcher state in
which it happened; it is the single failure value surfaced to the VM.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


def _truncate(data: Any, max_len: int = 256) -> Any:
    """
    Truncate large strings/lists for safe inclusion in diagnostics.
    Containers (list/tuple/dict) are shallowly summarized.
    """
    if isinstance(data, str):
        if len(data) <= max_len:
            return data
        return data[:max_len] + "..."
    if isinstance(data, (list, tuple)):
        return [_truncate(x, max_len) for x in data[:16]] + (
            ["..."] if len(data) > 16 else []
        )
    if isinstance(data, dict):
        out: Dict[str, Any] = {}
        for i, (k, v) in enumerate(data.items()):
            if i >= 16:
                out["..."] = "truncated"
                break
            out[str(k)] = _truncate(v, max_len)
        return out
    return data


class BridgeError(Exception):
    """
    Base class for oracle bridge errors.

    Attributes
    ----------
    code : str
        Stable, upper-snake ASCII identifier (e.g., 'TYPE_MISMATCH').
    message : str
        Human-friendly explanation (single line preferred).
    details : dict
        Structured context (type names, paths, offending values).
    """

    code: str = "BRIDGE_ERROR"

    def __init__(
        self,
        message: str = "oracle bridge error",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = _truncate(details or {})

    def to_dict(self) -> Dict[str, Any]:
        """
        Structured representation safe for logs and CLI output.
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.code}: {self.message}"


# ----------------------------
# Schema
# ----------------------------


class SchemaError(BridgeError):
    """Definitions are malformed or use an unsupported construct."""

    code = "SCHEMA_ERROR"


class ParseError(SchemaError):
    code = "PARSE_ERROR"

    def __init__(self, message: str, *, line: int = 0, column: int = 0) -> None:
        super().__init__(
            f"{message} (line {line}, column {column})",
            details={"line": line, "column": column},
        )
        self.line = line
        self.column = column


class UnsupportedFieldKind(SchemaError):
    """Map fields, oneof blocks, floats, streaming RPCs and self-containing messages are rejected at load time."""

    code = "UNSUPPORTED_FIELD_KIND"

    def __init__(self, *, owner: str, name: str, kind: str) -> None:
        super().__init__(
            f"{owner}.{name}: {kind} is not supported",
            details={"owner": owner, "name": name, "kind": kind},
        )


class DuplicateTypeName(SchemaError):
    code = "DUPLICATE_TYPE_NAME"

    def __init__(self, name: str) -> None:
        super().__init__(f"type {name!r} declared more than once", details={"name": name})


class DuplicateFieldName(SchemaError):
    code = "DUPLICATE_FIELD_NAME"

    def __init__(self, *, owner: str, name: str) -> None:
        super().__init__(
            f"{owner}: field/variant {name!r} declared more than once",
            details={"owner": owner, "name": name},
        )


class UnknownTypeReference(SchemaError):
    code = "UNKNOWN_TYPE_REFERENCE"

    def __init__(self, *, owner: str, reference: str) -> None:
        super().__init__(
            f"{owner}: reference to undeclared type {reference!r}",
            details={"owner": owner, "reference": reference},
        )


class SelectorTooLong(SchemaError):
    code = "SELECTOR_TOO_LONG"

    def __init__(self, selector: str, limit: int) -> None:
        super().__init__(
            f"selector {selector!r} exceeds {limit} bytes",
            details={"selector": selector, "limit": limit},
        )


class DuplicateSelector(SchemaError):
    code = "DUPLICATE_SELECTOR"

    def __init__(self, selector: str) -> None:
        super().__init__(
            f"selector {selector!r} is used by more than one method",
            details={"selector": selector},
        )


# ----------------------------
# Lock artifact
# ----------------------------


class LockError(BridgeError):
    code = "LOCK_ERROR"


class LockLoadError(LockError):
    """The lock artifact is absent or is not a valid lock document."""

    code = "LOCK_LOAD_ERROR"


class LockCorrupted(LockError):
    """The stored schema hash does not match the lock contents."""

    code = "LOCK_CORRUPTED"


class LockSerializationError(LockError):
    code = "LOCK_SERIALIZATION_ERROR"


class SchemaDrift(LockError):
    """The VM-side code was generated against a different schema than the lock."""

    code = "SCHEMA_DRIFT"

    def __init__(self, *, expected: str, actual: str) -> None:
        super().__init__(
            "schema hash of the lock artifact does not match the generated VM code",
            details={"expected": expected, "actual": actual},
        )


# ----------------------------
# Codec
# ----------------------------


class EncodeError(BridgeError):
    code = "ENCODE_ERROR"

    def __init__(self, message: str, *, path: str = "$", details: Optional[Dict[str, Any]] = None) -> None:
        dd = {"path": path}
        if details:
            dd.update(details)
        super().__init__(f"{path}: {message}", details=dd)
        self.path = path


class TypeMismatch(EncodeError):
    code = "TYPE_MISMATCH"


class RangeOverflow(EncodeError):
    code = "RANGE_OVERFLOW"


class UnknownEnumVariant(EncodeError):
    code = "UNKNOWN_ENUM_VARIANT"


class DecodeError(BridgeError):
    code = "DECODE_ERROR"

    def __init__(self, message: str, *, offset: int = 0, details: Optional[Dict[str, Any]] = None) -> None:
        dd = {"offset": offset}
        if details:
            dd.update(details)
        super().__init__(f"{message} (at element {offset})", details=dd)
        self.offset = offset


class Truncated(DecodeError):
    code = "TRUNCATED"


class InvalidEnumIndex(DecodeError):
    code = "INVALID_ENUM_INDEX"


class ElementOutOfRange(DecodeError):
    code = "ELEMENT_OUT_OF_RANGE"


class InvalidPresence(DecodeError):
    """An Optional presence element or a bool element was neither 0 nor 1."""

    code = "INVALID_PRESENCE"


class TrailingElements(DecodeError):
    code = "TRAILING_ELEMENTS"


# ----------------------------
# Routing / transport / protocol
# ----------------------------


class RoutingError(BridgeError):
    code = "ROUTING_ERROR"


class MethodNotFound(RoutingError):
    code = "METHOD_NOT_FOUND"

    def __init__(self, selector: str, *, service: Optional[str] = None) -> None:
        where = f" in service {service!r}" if service else ""
        super().__init__(
            f"no method for selector {selector!r}{where}",
            details={"selector": selector, "service": service},
        )


class ServerNotConfigured(RoutingError):
    code = "SERVER_NOT_CONFIGURED"

    def __init__(self, service: str) -> None:
        super().__init__(
            f"no server address configured for service {service!r}",
            details={"service": service},
        )


class TransportError(BridgeError):
    """Connection failure or timeout. ``kind`` is CONNECT, TIMEOUT or HTTP."""

    code = "TRANSPORT_ERROR"

    def __init__(self, message: str, *, kind: str, url: Optional[str] = None) -> None:
        super().__init__(message, details={"kind": kind, "url": url})
        self.kind = kind
        self.url = url


class ProtocolError(BridgeError):
    code = "PROTOCOL_ERROR"


class MalformedResponse(ProtocolError):
    code = "MALFORMED_RESPONSE"


class OracleRejected(ProtocolError):
    """The server answered, but not with a ``{"result": ...}`` envelope."""

    code = "ORACLE_REJECTED"

    def __init__(self, message: str, *, payload: Any = None, status_code: Optional[int] = None) -> None:
        super().__init__(message, details={"payload": payload, "status_code": status_code})
        self.payload = payload
        self.status_code = status_code


# ----------------------------
# Codegen / config
# ----------------------------


class CodegenIOError(BridgeError):
    code = "CODEGEN_IO_ERROR"


class ConfigError(BridgeError):
    code = "CONFIG_ERROR"


# ----------------------------
# Dispatcher failure
# ----------------------------


class DispatchFailed(BridgeError):
    """
    Terminal failure of one delegated-computation request.

    ``kind`` is the code of the underlying error and ``state`` the dispatcher
    state that was being entered when it happened.
    """

    code = "DISPATCH_FAILED"

    def __init__(self, *, selector: str, state: str, cause: BridgeError) -> None:
        super().__init__(
            f"oracle call {selector!r} failed in state {state}: {cause.message}",
            details={
                "selector": selector,
                "state": state,
                "kind": cause.code,
                "cause": cause.details,
            },
        )
        self.selector = selector
        self.state = state
        self.kind = cause.code
        self.cause = cause


__all__ = [
    "BridgeError",
    "SchemaError",
    "ParseError",
    "UnsupportedFieldKind",
    "DuplicateTypeName",
    "DuplicateFieldName",
    "UnknownTypeReference",
    "SelectorTooLong",
    "DuplicateSelector",
    "LockError",
    "LockLoadError",
    "LockCorrupted",
    "LockSerializationError",
    "SchemaDrift",
    "EncodeError",
    "TypeMismatch",
    "RangeOverflow",
    "UnknownEnumVariant",
    "DecodeError",
    "Truncated",
    "InvalidEnumIndex",
    "ElementOutOfRange",
    "InvalidPresence",
    "TrailingElements",
    "RoutingError",
    "MethodNotFound",
    "ServerNotConfigured",
    "TransportError",
    "ProtocolError",
    "MalformedResponse",
    "OracleRejected",
    "CodegenIOError",
    "ConfigError",
    "DispatchFailed",
]
