"""
Database adapters namespace.

Connection utilities for the order ledger live here; models and repositories
are under ``fxgov.db``.
"""
