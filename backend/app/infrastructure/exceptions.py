"""
Custom Exceptions for the subscription ledger

Hierarchical exception classes for proper error handling across layers.
"""

from typing import Optional, Dict, Any


class LedgerError(Exception):
    """Base exception for all subscription ledger errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ValidationError(LedgerError):
    """Raised when input validation fails."""
    pass


class NotFoundError(LedgerError):
    """Raised when a requested resource is not found."""
    pass


class PersistenceError(LedgerError):
    """Raised when a datastore operation fails (timeouts included)."""

    retryable = True

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class ConfigurationError(LedgerError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)


class CorrelationError(LedgerError):
    """
    Raised when a billing event carries no user correlation key.

    The event can never be applied; upstream must fix the event source.
    """

    def __init__(
        self,
        message: str,
        subscription_id: Optional[str] = None,
    ):
        details = {}
        if subscription_id:
            details["subscription_id"] = subscription_id
        super().__init__(message, details)


class ReconciliationError(LedgerError):
    """Raised when a subscription transition could not be persisted."""

    retryable = True

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if user_id:
            details["user_id"] = user_id
        if subscription_id:
            details["subscription_id"] = subscription_id
        super().__init__(message, details, original_error)


class BillingProviderError(LedgerError):
    """Raised when the billing provider rejects or fails a request."""

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        user_message: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, {"retryable": retryable}, original_error)
        self.retryable = retryable
        self.user_message = user_message or message
