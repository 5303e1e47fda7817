"""
oracle_bridge.interfaces
========================

Narrow seams between the bridge core and its hosts.

- :class:`DelegatedCallSink`: what the VM runner talks to. One call per
  delegated-computation instruction: selector + request elements in, response
  elements out. :class:`~oracle_bridge.dispatch.dispatcher.OracleDispatcher`
  implements it; test doubles can too.
- :class:`DefinitionsSource`: where definitions text comes from.
- :class:`AddressTable`: service name → server entry lookups.

Nothing here depends on the VM's own API surface.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol, Sequence, runtime_checkable

from .errors import SchemaError

if TYPE_CHECKING:  # pragma: no cover
    from .dispatch.addresses import ServerEntry


@runtime_checkable
class DelegatedCallSink(Protocol):
    def ask_oracle(self, selector: str, elements: Sequence[int]) -> list[int]: ...


@runtime_checkable
class DefinitionsSource(Protocol):
    def read(self) -> str: ...


@runtime_checkable
class AddressTable(Protocol):
    def lookup(self, service: str) -> Optional[ServerEntry]: ...


@dataclass(frozen=True)
class FileDefinitions:
    """Definitions read from a file on disk."""

    path: Path

    def read(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise SchemaError(
                f"cannot read definitions file {self.path}: {e}",
                details={"path": str(self.path)},
            ) from e


__all__ = ["DelegatedCallSink", "DefinitionsSource", "AddressTable", "FileDefinitions"]
