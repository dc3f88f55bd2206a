"""Repository package exposing domain-specific database helpers."""

from .orders import OrderRepository

__all__ = ["OrderRepository"]
