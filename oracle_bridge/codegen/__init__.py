"""
oracle_bridge.codegen
=====================

Emit VM-side (Cairo) declarations and the lock artifact from a schema model.
"""

from .cairo import cairo_ident, cairo_type, emit_cairo
from .generate import LOCK_FILE_NAME, GeneratedArtifacts, generate, write_outputs

__all__ = [
    "cairo_ident",
    "cairo_type",
    "emit_cairo",
    "LOCK_FILE_NAME",
    "GeneratedArtifacts",
    "generate",
    "write_outputs",
]
