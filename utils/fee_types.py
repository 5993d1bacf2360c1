from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

# Fee cycle types
MONTHLY = "monthly"
QUARTERLY = "quarterly"
YEARLY = "yearly"
ONE_TIME = "one-time"

CYCLE_TYPES = frozenset({MONTHLY, QUARTERLY, YEARLY, ONE_TIME})
PERIOD_TYPES = frozenset({MONTHLY, QUARTERLY, YEARLY})

# Billing period statuses
PENDING = "pending"
BILLED = "billed"
PARTIALLY_PAID = "partially-paid"
PAID = "paid"
OVERDUE = "overdue"
WAIVED = "waived"

PERIOD_STATUSES = frozenset({PENDING, BILLED, PARTIALLY_PAID, PAID, OVERDUE, WAIVED})
TERMINAL_STATUSES = frozenset({PAID, WAIVED})
OUTSTANDING_STATUSES = tuple(sorted(PERIOD_STATUSES - TERMINAL_STATUSES))
OVERDUE_CANDIDATE_STATUSES = (BILLED, PARTIALLY_PAID)

NaturalKey = Tuple[str, str, int, Optional[int], Optional[int]]


def parse_iso_date(value: Any, field_name: str = "date") -> Optional[date]:
    """Parse a ``YYYY-MM-DD`` value into a :class:`date`.

    ``None`` and empty strings map to ``None``. Datetimes are truncated to their
    date part so no time-of-day ever leaks into comparisons.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise ValueError(f"Invalid {field_name}: {value!r} (expected YYYY-MM-DD)") from None
    raise ValueError(f"Invalid {field_name}: {value!r}")


def to_decimal(value: Any) -> Decimal:
    """Coerce a stored amount to Decimal; missing amounts count as zero."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}") from None


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


@dataclass(frozen=True)
class StudentRecord:
    id: str
    school_id: Optional[str] = None
    admission_date: Optional[date] = None
    class_group_id: Optional[str] = None


@dataclass(frozen=True)
class FeeCycle:
    student_id: str
    school_id: str
    cycle_type: str
    effective_from: date
    effective_to: Optional[date] = None
    is_active: bool = True
    id: Optional[str] = None

    def __post_init__(self):
        if self.cycle_type not in CYCLE_TYPES:
            raise ValueError(f"Unknown fee cycle {self.cycle_type!r}")

    @property
    def has_valid_range(self) -> bool:
        return self.effective_to is None or self.effective_to >= self.effective_from

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "school_id": self.school_id,
            "fee_cycle": self.cycle_type,
            "effective_from": self.effective_from.isoformat(),
            "effective_to": self.effective_to.isoformat() if self.effective_to else None,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class BillingPeriod:
    student_id: str
    school_id: str
    period_type: str
    period_year: int
    period_start: date
    period_end: date
    period_month: Optional[int] = None
    period_quarter: Optional[int] = None
    status: str = PENDING
    expected_amount: Optional[Decimal] = None
    paid_amount: Optional[Decimal] = None
    balance_amount: Optional[Decimal] = None
    id: Optional[str] = None

    def __post_init__(self):
        if self.period_type not in PERIOD_TYPES:
            raise ValueError(f"Unknown period type {self.period_type!r}")
        if self.status not in PERIOD_STATUSES:
            raise ValueError(f"Unknown period status {self.status!r}")
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")

    @property
    def natural_key(self) -> NaturalKey:
        return (self.student_id, self.period_type, self.period_year, self.period_month, self.period_quarter)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "school_id": self.school_id,
            "period_type": self.period_type,
            "period_year": self.period_year,
            "period_month": self.period_month,
            "period_quarter": self.period_quarter,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "status": self.status,
            "expected_amount": _money(self.expected_amount),
            "paid_amount": _money(self.paid_amount),
            "balance_amount": _money(self.balance_amount),
        }


@dataclass(frozen=True)
class OverduePeriod:
    """A billed period joined with its bill and the live outstanding balance."""

    period: BillingPeriod
    bill_id: str
    due_date: date
    net_amount: Decimal
    balance: Decimal

    def as_dict(self) -> Dict[str, Any]:
        data = self.period.as_dict()
        data["fee_bills"] = {
            "id": self.bill_id,
            "due_date": self.due_date.isoformat(),
            "net_amount": str(self.net_amount),
            "balance": str(self.balance),
        }
        return data


@dataclass(frozen=True)
class DuesSummary:
    total_periods: int = 0
    paid_periods: int = 0
    pending_periods: int = 0
    total_expected: Decimal = field(default_factory=lambda: Decimal("0"))
    total_paid: Decimal = field(default_factory=lambda: Decimal("0"))
    total_balance: Decimal = field(default_factory=lambda: Decimal("0"))
    overdue_amount: Decimal = field(default_factory=lambda: Decimal("0"))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_periods": self.total_periods,
            "paid_periods": self.paid_periods,
            "pending_periods": self.pending_periods,
            "total_expected": str(self.total_expected),
            "total_paid": str(self.total_paid),
            "total_balance": str(self.total_balance),
            "overdue_amount": str(self.overdue_amount),
        }
