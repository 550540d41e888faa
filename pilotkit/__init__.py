"""Filesystem helpers, tree moves, table and string utilities, and TCP/TLS sockets."""

__version__ = "0.1.0"