"""
oracle_bridge.dispatch
======================

Run-time side of the bridge: the address table, the HTTP transport and the
dispatcher that serves delegated-computation requests from the VM.
"""

from .addresses import (PollingConfig, ServerEntry, StaticAddressTable,
                        load_address_table, normalize_address)
from .transport import OracleTransport
from .dispatcher import DispatchState, OracleDispatcher, unwrap_envelope

__all__ = [
    "PollingConfig",
    "ServerEntry",
    "StaticAddressTable",
    "load_address_table",
    "normalize_address",
    "OracleTransport",
    "DispatchState",
    "OracleDispatcher",
    "unwrap_envelope",
]
