"""
Custom exceptions for better error handling.
"""
from typing import Any, Dict, Optional


class QuantoDaException(Exception):
    """Base exception for all subscription analysis errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(QuantoDaException):
    """Raised when configuration is invalid."""
    pass


class FileProcessingError(QuantoDaException):
    """Raised when an uploaded file cannot be read."""
    pass


class UnsupportedFormatError(FileProcessingError):
    """Raised when the uploaded file type is not CSV, plain text or PDF."""
    pass


class ValidationError(QuantoDaException):
    """Raised when data validation fails."""
    pass


class ClassificationError(QuantoDaException):
    """Raised when the LLM classifier call fails (network, auth, quota)."""
    pass


class ClassificationTimeout(ClassificationError):
    """Raised when the classifier does not answer in time."""
    pass


class ResponseParseError(QuantoDaException):
    """Raised when the classifier returns unparsable or non-conforming JSON."""
    pass


class AuthenticationRequiredError(QuantoDaException):
    """Raised when an operation needs a logged-in session."""
    pass


class InsufficientCreditsError(QuantoDaException):
    """Raised when the session has no analysis credits left."""
    pass


class AnalysisInProgressError(QuantoDaException):
    """Raised when a second analysis is submitted while one is pending."""
    pass


class PaymentError(QuantoDaException):
    """Raised when the payment provider call fails."""
    pass


class ExportError(QuantoDaException):
    """Raised when the spreadsheet report export fails."""
    pass


class DataNotFoundError(QuantoDaException):
    """Raised when required data is not found."""
    pass
