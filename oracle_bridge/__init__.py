"""
oracle_bridge
-------------

Bridge between a VM program and external "oracle" servers.

The VM hands over a delegated computation as a flat sequence of field
elements; this package turns it into JSON, posts it to the configured server,
checks the ``{"result": ...}`` envelope and turns the answer back into field
elements. The same schema drives the generator that emits the VM-side type
declarations, so both ends agree element for element.

Subpackages:

- ``oracle_bridge.schema``   definitions parser, type graph, lock artifact
- ``oracle_bridge.codec``    flat and streaming element codecs
- ``oracle_bridge.codegen``  VM-side declarations + lock generation
- ``oracle_bridge.dispatch`` run-time dispatcher and HTTP transport

Example:

    from oracle_bridge import __version__
"""

from __future__ import annotations

from .version import __version__

__all__ = ["__version__"]
