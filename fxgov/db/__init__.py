"""Database package exposing SQLAlchemy base metadata and model imports."""

from __future__ import annotations

from fxgov.adapters.db.postgres import Base, metadata

# Register models on the shared metadata.
from . import models  # noqa: F401

__all__ = ["Base", "metadata"]
