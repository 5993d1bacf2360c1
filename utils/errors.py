from __future__ import annotations

from typing import Optional


class FeeBillingError(Exception):
    """Base error for fee scheduling and ledger operations.

    ``operation`` and ``student_id`` are kept on the instance so route handlers
    and jobs can log them without parsing the message.
    """

    def __init__(self, message: str, operation: Optional[str] = None, student_id: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
        self.student_id = student_id


class FeeLookupError(FeeBillingError, LookupError):
    """A student or fee-cycle lookup failed."""


class StudentNotFound(FeeLookupError):
    pass


class PersistenceConflict(FeeBillingError):
    """A period or default-cycle write collided or failed. Benign for generation."""


class AggregationError(FeeBillingError):
    """A ledger read failed."""


class DependencyFailure(FeeBillingError):
    """The server-side overdue procedure failed."""
