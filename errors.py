"""
Error taxonomy shared by every exchange client and the order façade.
"""
from typing import Any, Dict, List, Optional


class TradingError(Exception):
    """Base class for all errors raised by the trading client."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(TradingError):
    """
    Missing credentials, invalid keys, precision mismatches or unsupported
    exchange/pair names. Never retried.
    """


class NetworkError(TradingError):
    """Timeout, connection failure or server-side (5xx) error. Retryable."""


class AllEndpointsFailedError(NetworkError):
    """Every endpoint of a redundant request failed."""

    def __init__(self, message: str, errors: List[Exception]):
        self.errors = errors
        super().__init__(message, {"errors": [str(e) for e in errors]})


class ProtocolShapeError(TradingError):
    """A response did not have the shape this client relies on. Never retried."""


class VenueError(TradingError):
    """
    The venue answered with an application-level error.

    The raw error payload is kept in ``payload`` so callers can inspect it.
    """

    def __init__(self, message: str, payload: Any = None):
        self.payload = payload
        super().__init__(message, {"payload": payload} if payload is not None else None)


class UnsupportedResponseError(TradingError):
    """A valid reply whose meaning is deliberately left uninterpreted."""


class PartialOrderError(TradingError):
    """
    A transaction was broadcast but a later step failed.

    ``transaction_id`` is proof of submission and must not be discarded.
    """

    def __init__(self, message: str, transaction_id: str, cause: Optional[Exception] = None):
        self.transaction_id = transaction_id
        self.cause = cause
        super().__init__(message, {"transaction_id": transaction_id, "cause": str(cause) if cause else None})
