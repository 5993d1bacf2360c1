"""Billing-period generation and due-date rules.

Periods are derived from a student's active fee cycles for one academic year
(modelled as Jan 1 - Dec 31). Persistence is insert-if-absent on the period's
natural key, so the generator can be re-run for the same student at any time.
"""
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

from utils.errors import FeeLookupError, PersistenceConflict, StudentNotFound
from utils.fee_store import FeeStore
from utils.fee_types import (
    MONTHLY,
    ONE_TIME,
    QUARTERLY,
    YEARLY,
    BillingPeriod,
    FeeCycle,
    NaturalKey,
)

logger = logging.getLogger(__name__)

# (quarter, start month, end month, end day)
QUARTERS = (
    (1, 1, 3, 31),
    (2, 4, 6, 30),
    (3, 7, 9, 30),
    (4, 10, 12, 31),
)

DEFAULT_DUE_OFFSET_DAYS = 7


@dataclass(frozen=True)
class PersistOutcome:
    attempted: int
    inserted: int
    conflict: Optional[str] = None

    @property
    def existing(self) -> int:
        """Rows skipped because their natural key was already stored."""
        if self.conflict is not None:
            return 0
        return self.attempted - self.inserted


def _month_end(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def _starts_within(start: date, admission_date: date, cycle: FeeCycle) -> bool:
    # Only the period start is compared, never its end.
    return (
        start >= admission_date
        and start >= cycle.effective_from
        and (cycle.effective_to is None or start <= cycle.effective_to)
    )


def monthly_periods(cycle: FeeCycle, academic_year: int, admission_date: date) -> List[BillingPeriod]:
    year_end = date(academic_year, 12, 31)
    current = max(admission_date, cycle.effective_from)
    end = min(cycle.effective_to, year_end) if cycle.effective_to else year_end

    periods = []
    while current <= end:
        month_start = current.replace(day=1)
        month_end = _month_end(month_start)
        periods.append(
            BillingPeriod(
                student_id=cycle.student_id,
                school_id=cycle.school_id,
                period_type=MONTHLY,
                period_year=month_start.year,
                period_month=month_start.month,
                period_start=month_start,
                period_end=month_end,
            )
        )
        current = month_end + timedelta(days=1)
    return periods


def quarterly_periods(cycle: FeeCycle, academic_year: int, admission_date: date) -> List[BillingPeriod]:
    periods = []
    for quarter, start_month, end_month, end_day in QUARTERS:
        quarter_start = date(academic_year, start_month, 1)
        if not _starts_within(quarter_start, admission_date, cycle):
            continue
        periods.append(
            BillingPeriod(
                student_id=cycle.student_id,
                school_id=cycle.school_id,
                period_type=QUARTERLY,
                period_year=academic_year,
                period_quarter=quarter,
                period_start=quarter_start,
                period_end=date(academic_year, end_month, end_day),
            )
        )
    return periods


def yearly_periods(cycle: FeeCycle, academic_year: int, admission_date: date) -> List[BillingPeriod]:
    year_start = date(academic_year, 1, 1)
    if not _starts_within(year_start, admission_date, cycle):
        return []
    return [
        BillingPeriod(
            student_id=cycle.student_id,
            school_id=cycle.school_id,
            period_type=YEARLY,
            period_year=academic_year,
            period_start=year_start,
            period_end=date(academic_year, 12, 31),
        )
    ]


_GENERATORS = {
    MONTHLY: monthly_periods,
    QUARTERLY: quarterly_periods,
    YEARLY: yearly_periods,
}


def periods_for_cycle(cycle: FeeCycle, academic_year: int, admission_date: date) -> List[BillingPeriod]:
    """Periods a single cycle contributes to ``academic_year``.

    One-time cycles contribute nothing; they are billed by a separate flow.
    """
    if cycle.cycle_type == ONE_TIME:
        return []
    return _GENERATORS[cycle.cycle_type](cycle, academic_year, admission_date)


def dedupe_by_natural_key(periods: Sequence[BillingPeriod]) -> List[BillingPeriod]:
    """First occurrence wins, order preserved."""
    seen: Dict[NaturalKey, BillingPeriod] = {}
    for period in periods:
        seen.setdefault(period.natural_key, period)
    return list(seen.values())


def persist_periods(store: FeeStore, periods: Sequence[BillingPeriod]) -> PersistOutcome:
    """Insert periods if absent. Write failures are reported, never raised."""
    unique = dedupe_by_natural_key(periods)
    if not unique:
        return PersistOutcome(attempted=0, inserted=0)
    try:
        inserted = store.insert_periods(unique)
    except PersistenceConflict as exc:
        return PersistOutcome(attempted=len(unique), inserted=0, conflict=str(exc))
    return PersistOutcome(attempted=len(unique), inserted=inserted)


def _ensure_cycles(store: FeeStore, student_id: str, school_id: str, academic_year: int) -> List[FeeCycle]:
    try:
        cycles = store.list_fee_cycles(student_id)
    except Exception as exc:
        raise FeeLookupError(
            f"Failed to get fee cycles for student {student_id}: {exc}",
            operation="generate_student_fee_schedule",
            student_id=student_id,
        ) from exc
    if cycles:
        return cycles

    default = FeeCycle(
        student_id=student_id,
        school_id=school_id,
        cycle_type=MONTHLY,
        effective_from=date(academic_year, 1, 1),
    )
    try:
        created = store.insert_fee_cycle(default)
    except PersistenceConflict as exc:
        logger.warning(
            "Default fee cycle for student %s was not stored: %s",
            student_id,
            exc,
            extra={"outcome": "persistence_conflict", "student_id": student_id},
        )
    else:
        if not created:
            logger.info("Default fee cycle for student %s already existed", student_id)
    return [default]


def generate_student_fee_schedule(
    store: FeeStore,
    student_id: str,
    school_id: str,
    academic_year: int,
) -> List[BillingPeriod]:
    """Generate and store a student's billing periods for ``academic_year``.

    Returns every period derived from the active cycles, including ones that
    were already stored. Raises :class:`FeeLookupError` when cycles or the
    student cannot be read and :class:`StudentNotFound` for unknown students.
    """
    try:
        student = store.get_student(student_id)
    except Exception as exc:
        raise FeeLookupError(
            f"Failed to get student {student_id}: {exc}",
            operation="generate_student_fee_schedule",
            student_id=student_id,
        ) from exc
    if student is None:
        raise StudentNotFound(
            f"Student {student_id} not found",
            operation="generate_student_fee_schedule",
            student_id=student_id,
        )

    cycles = _ensure_cycles(store, student_id, school_id, academic_year)
    admission_date = student.admission_date or date(academic_year, 1, 1)

    periods: List[BillingPeriod] = []
    for cycle in cycles:
        if not cycle.has_valid_range:
            logger.warning(
                "Skipping fee cycle %s for student %s: effective_to %s is before effective_from %s",
                cycle.id,
                student_id,
                cycle.effective_to,
                cycle.effective_from,
                extra={"outcome": "invalid_cycle", "student_id": student_id},
            )
            continue
        periods.extend(periods_for_cycle(cycle, academic_year, admission_date))

    outcome = persist_periods(store, periods)
    if outcome.conflict:
        logger.warning(
            "Error inserting periods for student %s: %s",
            student_id,
            outcome.conflict,
            extra={"outcome": "persistence_conflict", "student_id": student_id},
        )
    else:
        logger.info(
            "Generated %d periods for student %s (%d new, %d existing)",
            len(periods),
            student_id,
            outcome.inserted,
            outcome.existing,
            extra={"outcome": "persisted", "student_id": student_id, "academic_year": academic_year},
        )
    return periods


def calculate_due_date(period_start: date, period_end: date, due_day: Optional[int] = None) -> date:
    """Due date for a period.

    With a ``due_day`` in 1..31 the day-of-month of ``period_end`` is replaced,
    overflowing into the following month when the month is too short (day 31
    of a 30-day month is the 1st of the next month). Any result after
    ``period_end`` is clamped to ``period_end``. Without a valid ``due_day``
    the period is due 7 days after it ends.
    """
    if due_day is not None and 1 <= due_day <= 31:
        candidate = period_end.replace(day=1) + timedelta(days=due_day - 1)
        if candidate > period_end:
            return period_end
        return candidate
    return period_end + timedelta(days=DEFAULT_DUE_OFFSET_DAYS)
