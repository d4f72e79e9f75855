"""Custom exceptions for Legacy Sync.

This module defines the error taxonomy shared by the legacy platform client,
the state store and the migration pipeline. Transient API errors are retried
inside the client, per-record errors are collected by the migrators, and
systemic errors abort the whole run.
"""

from typing import Any


class LegacySyncError(Exception):
    """Base exception for all Legacy Sync errors."""

    pass


class APIError(LegacySyncError):
    """Base class for legacy platform API errors."""

    def __init__(self, message: str, status_code: int | None = None, response: dict | None = None):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
        """
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with status code and response."""
        msg = self.message
        if self.status_code:
            msg = f"[{self.status_code}] {msg}"
        if self.response:
            msg = f"{msg}: {self.response}"
        return msg


class AuthenticationError(APIError):
    """Raised when the API token is rejected (401 Unauthorized)."""

    pass


class AuthorizationError(APIError):
    """Raised when the token lacks access to a data type (403 Forbidden)."""

    pass


class NotFoundError(APIError):
    """Raised when a record or workflow does not exist (404 Not Found)."""

    pass


class RequestTimeoutError(APIError):
    """Raised when the platform reports a request timeout (408)."""

    pass


class RateLimitError(APIError):
    """Raised when API rate limit is exceeded (429 Too Many Requests)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict | None = None,
        retry_after: int | None = None,
    ):
        """Initialize rate limit error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
            retry_after: Seconds to wait before retrying (from Retry-After header)
        """
        super().__init__(message, status_code, response)
        self.retry_after = retry_after


class ServerError(APIError):
    """Raised when the platform returns a 5xx error."""

    pass


class NetworkError(LegacySyncError):
    """Raised when network-related errors occur (timeouts, connection failures)."""

    pass


class StateError(LegacySyncError):
    """Raised when the relational store is unavailable or a state operation fails."""

    pass


class ConstraintViolationError(LegacySyncError):
    """Raised when a single write violates a storage constraint.

    This is a per-record condition: the offending record is skipped and the
    run continues.
    """

    pass


class ConfigurationError(LegacySyncError):
    """Raised when configuration is invalid or missing."""

    pass


class MigrationError(LegacySyncError):
    """Raised when migration operations fail."""

    pass


class RecordError(MigrationError):
    """Raised when one legacy record cannot be migrated.

    The string form is the operator-facing error line
    ``"{entity_type}/{legacy_id}: {message}"``.
    """

    def __init__(self, entity_type: str, legacy_id: str | None, message: str):
        """Initialize record error.

        Args:
            entity_type: Entity type name (e.g. ``projects``)
            legacy_id: Legacy identifier of the record, if known
            message: Human-readable reason
        """
        self.entity_type = entity_type
        self.legacy_id = legacy_id
        self.message = message
        super().__init__(f"{entity_type}/{legacy_id or '?'}: {message}")


class DependencyError(RecordError):
    """Raised when a required foreign key has no confirmed identifier mapping."""

    pass


class RunInProgressError(MigrationError):
    """Raised when another sync run holds the lock for the same tenant scope."""

    def __init__(self, tenant_scope: str, run_id: str | None = None):
        self.tenant_scope = tenant_scope
        self.run_id = run_id
        super().__init__(
            f"A sync run is already in progress for tenant scope '{tenant_scope}'"
            + (f" (run {run_id})" if run_id else "")
        )


class SyncRunFailedError(MigrationError):
    """Raised when a run aborts on a systemic error.

    Attributes:
        reason: Operator-facing failure reason
        report: Partial report accumulated before the failure
    """

    def __init__(self, reason: str, report: Any = None):
        self.reason = reason
        self.report = report
        super().__init__(f"run failed: {reason}")
