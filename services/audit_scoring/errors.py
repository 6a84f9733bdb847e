"""
Audit Scoring Errors
====================

Exceptions raised by the scoring service and mapped to HTTP responses
in `services.audit_scoring.main`.

Version: 0.1.0
"""

from typing import Any


class AuditScoringError(Exception):
    """Base error for the audit scoring service."""

    error_code = "audit_scoring_error"
    retryable = False

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_details(self) -> dict[str, Any] | None:
        """Extra context for the error response."""
        if self.field is None:
            return None
        return {"field": self.field}


class NotFoundError(AuditScoringError):
    """An audit, standard or maturity level id does not exist."""

    error_code = "not_found"


class ValidationError(AuditScoringError):
    """Input breaks a scoring rule; raised before anything is written."""

    error_code = "validation_error"


class ConcurrencyConflictError(AuditScoringError):
    """
    Another recalculation for the same audit won the race.

    Nothing was written; the caller may retry the whole operation.
    """

    error_code = "concurrency_conflict"
    retryable = True
