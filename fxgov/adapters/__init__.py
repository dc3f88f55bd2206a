"""Outbound adapters package for the execution service.

- db: database adapters (PostgreSQL engine and sessions)

This module avoids eager imports to reduce side effects at app startup.
"""

__all__ = ["db"]
