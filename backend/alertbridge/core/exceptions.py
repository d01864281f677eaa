"""
Pipeline error taxonomy.

Eligibility rejections are not errors and never raise; everything here
ends the current unit of work (a strategy, an alert or a reconciled order).
"""

from typing import Any, Dict, Optional


class AlertBridgeError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AlertBridgeError):
    """Malformed alert payload, strategy config or order parameters."""
    pass


class CredentialsMissingError(AlertBridgeError):
    """User has no usable brokerage credentials."""

    def __init__(self, message: str = "Fyers credentials not found"):
        super().__init__(message)


class BrokerError(AlertBridgeError):
    """
    Any failure reported by (or while talking to) the brokerage.

    Carries the broker's message verbatim, its numeric error code when one
    was returned, and the raw response body for later inspection.
    """

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.response = response or {}


class PersistenceError(AlertBridgeError):
    """Storage failure during an insert or update."""
    pass


class OrderNotFoundError(AlertBridgeError):
    """Referenced order row does not exist."""
    pass
