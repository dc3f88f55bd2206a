"""
Execution package.

Broker-specific clients live here.

Example:
    from fxgov.execution import oanda
    client = oanda.OandaClient(token, account_id, base_url)
"""

from importlib import import_module
from types import ModuleType
from typing import List

__all__: List[str] = ["oanda"]


def __getattr__(name: str) -> ModuleType:
    """Lazily import submodules on first access."""
    if name == "oanda":
        return import_module(".oanda_client", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> List[str]:
    return sorted(list(globals().keys()) + __all__)
