"""Inspect the TLS certificate served by a remote host."""

__version__ = "1.0.0"
