"""
Error taxonomy for report operations.

Validation and permission errors block only the offending mutation.
StoreUnavailable / NetworkError are transient and safe to retry.
None of these are fatal to the process.
"""

from typing import Dict, List, Optional


class EcoWatchError(Exception):
    """Base class for all recoverable report errors."""

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(EcoWatchError):
    """Missing or out-of-range required field."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        super().__init__(message)
        self.errors = errors or []


class PermissionDenied(EcoWatchError):
    """Caller lacks the role required for the operation."""


class NotFound(EcoWatchError):
    """Unknown or stale report id."""


class Conflict(EcoWatchError):
    """Optimistic version check failed."""

    def __init__(self, message: str, expected_version: int, actual_version: int):
        super().__init__(message)
        self.expected_version = expected_version
        self.actual_version = actual_version


class StoreUnavailable(EcoWatchError):
    """Document/object store could not be reached."""

    retryable = True


class NetworkError(EcoWatchError):
    """External HTTP service could not be reached."""

    retryable = True


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, EcoWatchError) and exc.retryable
