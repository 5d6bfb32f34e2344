"""
Custom exceptions for the bootstrap pipeline.

This module defines a hierarchy of exceptions to provide more
precise error handling and debugging across the bootstrap run.
"""

from typing import Any, Dict, Iterable, Optional


class BootstrapBaseError(Exception):
    """
    Base exception for all bootstrap-related errors.

    All custom exceptions in the package should inherit from this class.
    Provides a common base for catching and handling bootstrap-specific errors.
    """

    pass


class ConfigurationError(BootstrapBaseError):
    """
    Raised when there are configuration-related issues.

    This exception is used when:
    - Required configuration parameters are missing
    - Configuration values are invalid
    - Environment setup is incorrect
    """

    pass


class AuthenticationError(BootstrapBaseError):
    """
    Raised when the login probe against the target instance fails.

    Covers issues such as:
    - Wrong username or password
    - Unreachable base URL
    - Account without API access
    """

    pass


class ImportRejectedError(BootstrapBaseError):
    """
    Raised when the target instance rejects a metadata or data import.

    Covers:
    - Non-success HTTP status on an import POST
    - Server-reported created count differing from the sent count
    - Imported objects missing from a verification read-back
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        report: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.report = report or {}


class SourceFetchError(BootstrapBaseError):
    """
    Raised when an upstream source file cannot be read.

    Covers network errors on remote CSV/JSON files, missing local
    files and unparseable content.
    """

    pass


class ValidationError(BootstrapBaseError):
    """
    Raised when records fail local pre-flight validation.

    Specific to checks performed before any network call:
    - Field values exceeding schema limits
    - Required fields left empty
    - Duplicate unique keys within a batch
    """

    pass


class DuplicateKeyError(ValidationError):
    """Raised when two or more records share a unique key after truncation."""

    def __init__(self, field: str, keys: Iterable[str]):
        self.field = field
        self.keys = sorted(str(key) for key in keys)
        super().__init__(
            f"Duplicate values for unique field '{field}': {', '.join(self.keys)}"
        )


class MissingRequiredFieldError(ValidationError):
    """Raised when a required field is empty."""

    pass


class JoinMismatchError(BootstrapBaseError):
    """
    Raised when rows are dropped across an inner join.

    Advisory: only raised when a caller asks for strict join checks.
    """

    pass


class RecomputeTimeoutError(BootstrapBaseError):
    """Raised when the analytics task does not complete within the poll limit."""

    pass
