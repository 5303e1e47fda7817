"""
Run-time dispatcher for delegated-computation requests.

One :meth:`OracleDispatcher.ask_oracle` call per request raised by the VM::

    Received → Resolved → Encoded → AwaitingResponse → Decoded → Completed
         \\_________\\__________\\______________\\___________→ Failed(kind)

- Resolved          selector → service method via the lock artifact
- Encoded           VM elements decoded into the JSON request body
- AwaitingResponse  server looked up in the address table, request sent (blocking)
- Decoded           ``{"result": ...}`` unwrapped and encoded back into elements
- Completed         elements handed back to the VM

Any failure becomes a single :class:`DispatchFailed` carrying the kind (the
underlying error's code), the state being entered and the cause. Nothing is
retried. The lock artifact and the address table are read-only after
construction.
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from ..codec.decoding import decode_exact
from ..codec.encoding import encode
from ..config import STARK_PRIME, Config
from ..errors import (BridgeError, DispatchFailed, OracleRejected,
                      SchemaDrift, ServerNotConfigured)
from ..interfaces import AddressTable
from ..logging import bind, get_logger, trace_scope
from ..schema.lock import LockArtifact, load_lock, schema_hash_felt
from ..schema.types import MessageRef, SchemaModel
from .addresses import load_address_table
from .transport import OracleTransport

__all__ = ["DispatchState", "unwrap_envelope", "OracleDispatcher"]

log = get_logger("oracle_bridge.dispatch")


class DispatchState(str, enum.Enum):
    RECEIVED = "Received"
    RESOLVED = "Resolved"
    ENCODED = "Encoded"
    AWAITING_RESPONSE = "AwaitingResponse"
    DECODED = "Decoded"
    COMPLETED = "Completed"
    FAILED = "Failed"


def unwrap_envelope(payload: Any) -> Any:
    """
    Return the value under ``result``. The body must be a JSON object with a
    ``result`` key and no ``error`` key; other keys are ignored.
    """
    if not isinstance(payload, dict) or "result" not in payload or "error" in payload:
        raise OracleRejected("response is not a {\"result\": ...} envelope", payload=payload)
    return payload["result"]


def _check_drift(expected: Union[str, int], lock: LockArtifact) -> None:
    """``expected`` is the full ``0x<64 hex>`` hash or the truncated felt from generated code."""
    digits = expected.strip().lower().removeprefix("0x") if isinstance(expected, str) else ""
    if len(digits) == 64:
        if digits != lock.schema_hash.removeprefix("0x"):
            raise SchemaDrift(expected=expected, actual=lock.schema_hash)
        return
    have = schema_hash_felt(lock.schema_hash)
    try:
        want = expected if isinstance(expected, int) else int(expected, 0)
    except ValueError:
        raise SchemaDrift(expected=str(expected), actual=hex(have)) from None
    if want != have:
        raise SchemaDrift(expected=hex(want), actual=hex(have))


class OracleDispatcher:
    """
    :class:`~oracle_bridge.interfaces.DelegatedCallSink` backed by a lock
    artifact, an address table and an HTTP transport.

    One instance per VM run; calls are expected one at a time.
    """

    def __init__(
        self,
        lock: LockArtifact,
        addresses: AddressTable,
        *,
        transport: Optional[OracleTransport] = None,
        modulus: int = STARK_PRIME,
        expected_schema_hash: Optional[Union[str, int]] = None,
        config: Optional[Config] = None,
    ) -> None:
        if expected_schema_hash is not None:
            _check_drift(expected_schema_hash, lock)
        self.lock = lock
        self.addresses = addresses
        self.modulus = config.codec.modulus if config is not None else modulus
        self._own_transport = transport is None
        if transport is None:
            if config is not None:
                transport = OracleTransport(
                    timeout=config.transport.request_timeout_s, headers=config.transport.headers
                )
            else:
                transport = OracleTransport()
        self.transport = transport
        self.trace: List[DispatchState] = []

    @classmethod
    def from_paths(
        cls,
        lock_path: Union[str, Path],
        servers_path: Union[str, Path],
        *,
        config: Optional[Config] = None,
        **kwargs: Any,
    ) -> "OracleDispatcher":
        """Load the lock artifact and the address table from disk (run start)."""
        lock = load_lock(lock_path)
        polling = config.polling if config is not None else None
        table = load_address_table(servers_path, polling_defaults=polling)
        return cls(lock, table, config=config, **kwargs)

    @property
    def model(self) -> SchemaModel:
        return self.lock.model

    def close(self) -> None:
        if self._own_transport:
            self.transport.close()

    def __enter__(self) -> "OracleDispatcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- state tracking

    def _enter(self, state: DispatchState, **extra: Any) -> None:
        self.trace.append(state)
        log.debug("dispatch state", extra={"state": state.value, **extra})

    # --- DelegatedCallSink

    def ask_oracle(self, selector: str, elements: Sequence[int]) -> List[int]:
        self.trace = []
        with trace_scope():
            bind(component="dispatcher", selector=selector)
            state = DispatchState.RECEIVED
            self._enter(state, elements=len(elements))
            try:
                state = DispatchState.RESOLVED
                method = self.model.find_selector(selector)
                bind(service=method.service)
                self._enter(state, method=method.name)

                state = DispatchState.ENCODED
                request = decode_exact(
                    self.model, MessageRef(method.request), list(elements), modulus=self.modulus
                )
                self._enter(state)

                state = DispatchState.AWAITING_RESPONSE
                entry = self.addresses.lookup(method.service)
                if entry is None:
                    raise ServerNotConfigured(method.service)
                self._enter(state, url=entry.url_for(method.path), polling=entry.polling)
                payload = self.transport.call(entry, method.path, request)

                state = DispatchState.DECODED
                result = unwrap_envelope(payload)
                out = encode(self.model, MessageRef(method.response), result, modulus=self.modulus)
                self._enter(state)

                state = DispatchState.COMPLETED
                self._enter(state, elements=len(out))
                return out
            except BridgeError as e:
                self.trace.append(DispatchState.FAILED)
                failure = DispatchFailed(selector=selector, state=state.value, cause=e)
                log.warning(
                    "oracle call failed",
                    extra={"state": state.value, "kind": e.code, "error": e.message},
                )
                raise failure from e

