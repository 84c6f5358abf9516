"""
Error types for flagcore.

Provides structured error handling with categories for better error management.
"""

from enum import Enum
from typing import Optional

import httpx


class ErrorCategory(str, Enum):
    """Categories of errors for classification."""

    DATAFILE = "datafile"
    SEGMENT_NOT_FOUND = "segment_not_found"
    FEATURE_NOT_FOUND = "feature_not_found"
    INVALID_TEST_SPEC = "invalid_test_spec"
    CONFIGURATION = "configuration"
    NETWORK = "network"
    UNKNOWN = "unknown"


class FlagcoreError(Exception):
    """Base exception for all flagcore errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.status_code = status_code
        self.retryable = retryable

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, category={self.category})"


class DatafileError(FlagcoreError):
    """Raised when the datafile content cannot be used."""

    def __init__(self, message: str = "Malformed datafile"):
        super().__init__(message, category=ErrorCategory.DATAFILE)


class MalformedExpressionError(DatafileError):
    """Raised when an encoded condition or segment expression cannot be decoded."""

    def __init__(self, value: str, reason: str = ""):
        message = f"Malformed expression: {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.value = value


class SegmentNotFoundError(FlagcoreError):
    """Raised when a segment key is absent from the datafile."""

    def __init__(self, segment_key: str):
        super().__init__(
            f"Segment does not exist: {segment_key}",
            category=ErrorCategory.SEGMENT_NOT_FOUND,
        )
        self.segment_key = segment_key


class FeatureNotFoundError(FlagcoreError):
    """Raised when a feature test names a feature absent from the datafile."""

    def __init__(self, feature_key: str):
        super().__init__(
            f"Feature does not exist: {feature_key}",
            category=ErrorCategory.FEATURE_NOT_FOUND,
        )
        self.feature_key = feature_key


class InvalidTestSpecError(FlagcoreError):
    """Raised when a test fixture is neither a segment nor a feature test."""

    def __init__(self, message: str = "Invalid test spec"):
        super().__init__(message, category=ErrorCategory.INVALID_TEST_SPEC)


class ConfigurationError(FlagcoreError):
    """Raised when the project or tests layout is unusable."""

    def __init__(self, message: str = "Invalid configuration"):
        super().__init__(message, category=ErrorCategory.CONFIGURATION)


class NetworkError(FlagcoreError):
    """Raised when the datafile cannot be reached."""

    def __init__(self, message: str = "Network error"):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            status_code=None,
            retryable=True,
        )


def is_retryable_status(status_code: int) -> bool:
    """Too Many Requests and server errors may succeed on a later attempt."""
    return status_code == 429 or 500 <= status_code < 600


class DatafileFetchError(FlagcoreError):
    """Raised when the datafile server answers with an error status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            status_code=status_code,
            retryable=is_retryable_status(status_code),
        )


def classify_error(error: Exception) -> FlagcoreError:
    """
    Map a datafile download failure onto a FlagcoreError.

    Args:
        error: The original exception

    Returns:
        The error itself when it already is a FlagcoreError, a
        DatafileFetchError for HTTP error responses, a NetworkError for
        transport failures and a plain FlagcoreError otherwise.
    """
    if isinstance(error, FlagcoreError):
        return error
    if isinstance(error, httpx.HTTPStatusError):
        return DatafileFetchError(str(error), error.response.status_code)
    if isinstance(error, httpx.TransportError):
        return NetworkError(f"Network error fetching datafile: {error}")
    return FlagcoreError(str(error))
