class FxGovError(Exception):
    """Base class for all fxgov exceptions."""


class ConfigError(FxGovError):
    """Raised for missing/malformed configuration."""


class BrokerError(FxGovError):
    """Raised when the broker returns an invalid or failed response."""

    def __init__(self, message: str, *, status_code: int | None = None, reason: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class TransientBrokerError(BrokerError):
    """Retryable broker failure (rate limit, unavailable)."""


class MarketHaltedError(TransientBrokerError):
    """Broker reported the market as halted; the rest of the tick is aborted."""


class PermanentBrokerError(BrokerError):
    """Non-retryable broker failure (validation, auth, cancelled order)."""


class LedgerConflictError(FxGovError):
    """Raised when an order insert violates the idempotency key constraint."""


class LedgerError(FxGovError):
    """Raised for any other ledger write failure."""


class DirectionInvariantError(FxGovError):
    """Raised when a non-long order reaches the submission boundary."""


__all__ = [
    "FxGovError",
    "ConfigError",
    "BrokerError",
    "TransientBrokerError",
    "MarketHaltedError",
    "PermanentBrokerError",
    "LedgerConflictError",
    "LedgerError",
    "DirectionInvariantError",
]
