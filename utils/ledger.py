from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from flask import current_app, has_app_context

from utils.errors import AggregationError, DependencyFailure
from utils.fee_store import FeeStore
from utils.fee_types import (
    OUTSTANDING_STATUSES,
    OVERDUE,
    OVERDUE_CANDIDATE_STATUSES,
    PAID,
    BillingPeriod,
    DuesSummary,
    OverduePeriod,
    to_decimal,
)
from utils.timezone_helpers import school_today

logger = logging.getLogger(__name__)

MARK_OVERDUE_PROCEDURE = "mark_overdue_periods"


def _today() -> date:
    # Inside the app the configured SCHOOL_TIMEZONE wins over the environment.
    tz_name = current_app.config.get("SCHOOL_TIMEZONE") if has_app_context() else None
    return school_today(tz_name)


def get_pending_periods(store: FeeStore, student_id: str) -> List[BillingPeriod]:
    """Periods still owed (pending, billed, partially-paid, overdue), oldest first."""
    try:
        return store.list_periods(student_id, statuses=OUTSTANDING_STATUSES)
    except Exception as exc:
        raise AggregationError(
            f"Failed to get pending periods for student {student_id}: {exc}",
            operation="get_pending_periods",
            student_id=student_id,
        ) from exc


def get_overdue_periods(store: FeeStore, student_id: str, today: Optional[date] = None) -> List[OverduePeriod]:
    """Billed or partially-paid periods whose bill is past due with money outstanding.

    The balance is the bill's net amount minus all payments made against it,
    computed at query time. Ordered by due date. ``today`` defaults to the
    school-local date.
    """
    today = today or _today()
    try:
        return store.list_overdue_periods(student_id, OVERDUE_CANDIDATE_STATUSES, before=today)
    except Exception as exc:
        raise AggregationError(
            f"Failed to get overdue periods for student {student_id}: {exc}",
            operation="get_overdue_periods",
            student_id=student_id,
        ) from exc


def summarize_dues(periods: List[BillingPeriod]) -> DuesSummary:
    zero = Decimal("0")
    total_expected = total_paid = total_balance = overdue_amount = zero
    paid_periods = pending_periods = 0
    for p in periods:
        balance = to_decimal(p.balance_amount)
        total_expected += to_decimal(p.expected_amount)
        total_paid += to_decimal(p.paid_amount)
        total_balance += balance
        if p.status == PAID:
            paid_periods += 1
        if p.status in OUTSTANDING_STATUSES:
            pending_periods += 1
        if p.status == OVERDUE:
            overdue_amount += balance
    return DuesSummary(
        total_periods=len(periods),
        paid_periods=paid_periods,
        pending_periods=pending_periods,
        total_expected=total_expected,
        total_paid=total_paid,
        total_balance=total_balance,
        overdue_amount=overdue_amount,
    )


def get_student_total_dues(store: FeeStore, student_id: str) -> DuesSummary:
    """Totals across every period of the student, whatever its status."""
    try:
        periods = store.list_periods(student_id)
    except Exception as exc:
        raise AggregationError(
            f"Failed to get student dues for student {student_id}: {exc}",
            operation="get_student_total_dues",
            student_id=student_id,
        ) from exc
    return summarize_dues(periods)


def mark_overdue_periods(store: FeeStore) -> None:
    """Run the server-side procedure that promotes past-due periods to overdue."""
    try:
        store.call_procedure(MARK_OVERDUE_PROCEDURE)
    except Exception as exc:
        logger.error("Error marking overdue periods: %s", exc)
        raise DependencyFailure(
            f"Failed to mark overdue periods: {exc}",
            operation="mark_overdue_periods",
        ) from exc
