"""Command line interface (``oracle-bridge``)."""
