"""Domain error taxonomy.

Services raise these; ``main.py`` turns them into ``{"message", "error"}``
responses with the matching HTTP status.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    status_code: int = 500

    def __init__(self, message: str, error: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.error = error


class ValidationError(ServiceError):
    """Malformed or missing input."""

    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class BusinessRuleViolation(ServiceError):
    status_code = 400


class InsufficientStockError(BusinessRuleViolation):
    pass


class OverReturnError(BusinessRuleViolation):
    pass


class InvalidStateError(BusinessRuleViolation):
    pass


class DuplicateError(BusinessRuleViolation):
    pass


class ConcurrencyConflictError(ServiceError):
    """A generated document number kept colliding; safe to retry."""

    status_code = 409


class InfrastructureError(ServiceError):
    status_code = 500
