"""Reconciliation core for production records shared by a local and a remote node."""

__version__ = "0.1.0"
