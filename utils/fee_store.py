from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import func, insert, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from models import FeeBill, FeeBillPeriod, FeePayment, Student, StudentFeeCycle
from utils.errors import PersistenceConflict
from utils.fee_types import (
    BillingPeriod,
    FeeCycle,
    OverduePeriod,
    StudentRecord,
    to_decimal,
)

_PROCEDURE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

PERIOD_CONFLICT_KEY = ("student_id", "period_type", "period_year", "period_month", "period_quarter")
CYCLE_CONFLICT_KEY = ("student_id", "fee_cycle", "effective_from")


class FeeStore:
    """Storage operations the fee scheduling core depends on.

    Implementations raise their backend's errors from the read methods and
    :class:`PersistenceConflict` from the write methods; the callers translate
    read errors into the operation-specific taxonomy.
    """

    def get_student(self, student_id: str) -> Optional[StudentRecord]:
        raise NotImplementedError

    def list_active_student_ids(self, school_id: str) -> List[str]:
        raise NotImplementedError

    def list_fee_cycles(self, student_id: str, school_id: Optional[str] = None) -> List[FeeCycle]:
        """Active cycles for a student, oldest ``effective_from`` first."""
        raise NotImplementedError

    def insert_fee_cycle(self, cycle: FeeCycle) -> bool:
        """Insert unless a cycle with the same conflict key exists. True if inserted."""
        raise NotImplementedError

    def replace_fee_cycle(self, cycle: FeeCycle) -> FeeCycle:
        """Deactivate the student's active cycles and make ``cycle`` the active one."""
        raise NotImplementedError

    def insert_periods(self, periods: Sequence[BillingPeriod]) -> int:
        """Insert periods, skipping natural-key duplicates. Returns rows inserted."""
        raise NotImplementedError

    def list_periods(self, student_id: str, statuses: Optional[Iterable[str]] = None) -> List[BillingPeriod]:
        """Periods for a student, ascending ``period_start``."""
        raise NotImplementedError

    def list_overdue_periods(self, student_id: str, statuses: Iterable[str], before: date) -> List[OverduePeriod]:
        """Billed periods due before ``before`` with a positive live balance, ascending due date."""
        raise NotImplementedError

    def call_procedure(self, name: str) -> None:
        raise NotImplementedError


def _period_from_model(row: FeeBillPeriod) -> BillingPeriod:
    return BillingPeriod(
        id=row.id,
        student_id=row.student_id,
        school_id=row.school_id,
        period_type=row.period_type,
        period_year=int(row.period_year),
        period_month=row.period_month or None,
        period_quarter=row.period_quarter or None,
        period_start=row.period_start,
        period_end=row.period_end,
        status=row.status,
        expected_amount=None if row.expected_amount is None else to_decimal(row.expected_amount),
        paid_amount=None if row.paid_amount is None else to_decimal(row.paid_amount),
        balance_amount=None if row.balance_amount is None else to_decimal(row.balance_amount),
    )


def _cycle_from_model(row: StudentFeeCycle) -> FeeCycle:
    return FeeCycle(
        id=row.id,
        student_id=row.student_id,
        school_id=row.school_id,
        cycle_type=row.fee_cycle,
        effective_from=row.effective_from,
        effective_to=row.effective_to,
        is_active=bool(row.is_active),
    )


def _period_row(period: BillingPeriod, now: datetime) -> dict:
    return {
        "id": str(uuid.uuid4()),
        "student_id": period.student_id,
        "school_id": period.school_id,
        "period_type": period.period_type,
        "period_year": period.period_year,
        "period_month": period.period_month or 0,
        "period_quarter": period.period_quarter or 0,
        "period_start": period.period_start,
        "period_end": period.period_end,
        "status": period.status,
        "created_at": now,
    }


class SqlAlchemyFeeStore(FeeStore):
    """FeeStore over a SQLAlchemy session (normally ``extensions.db.session``)."""

    def __init__(self, session):
        self.session = session

    # -----------------------------
    # Reads
    # -----------------------------

    def get_student(self, student_id: str) -> Optional[StudentRecord]:
        row = self.session.get(Student, student_id)
        if row is None:
            return None
        return StudentRecord(
            id=row.id,
            school_id=row.school_id,
            admission_date=row.admission_date,
            class_group_id=row.class_group_id,
        )

    def list_active_student_ids(self, school_id: str) -> List[str]:
        stmt = (
            select(Student.id)
            .where(Student.school_id == school_id, Student.is_active.is_(True))
            .order_by(Student.created_at.asc(), Student.id.asc())
        )
        return list(self.session.execute(stmt).scalars())

    def list_fee_cycles(self, student_id: str, school_id: Optional[str] = None) -> List[FeeCycle]:
        stmt = select(StudentFeeCycle).where(
            StudentFeeCycle.student_id == student_id,
            StudentFeeCycle.is_active.is_(True),
        )
        if school_id is not None:
            stmt = stmt.where(StudentFeeCycle.school_id == school_id)
        stmt = stmt.order_by(StudentFeeCycle.effective_from.asc())
        return [_cycle_from_model(row) for row in self.session.execute(stmt).scalars()]

    def list_periods(self, student_id: str, statuses: Optional[Iterable[str]] = None) -> List[BillingPeriod]:
        stmt = select(FeeBillPeriod).where(FeeBillPeriod.student_id == student_id)
        if statuses is not None:
            stmt = stmt.where(FeeBillPeriod.status.in_(list(statuses)))
        stmt = stmt.order_by(FeeBillPeriod.period_start.asc())
        return [_period_from_model(row) for row in self.session.execute(stmt).scalars()]

    def list_overdue_periods(self, student_id: str, statuses: Iterable[str], before: date) -> List[OverduePeriod]:
        paid = (
            select(
                FeePayment.bill_id.label("bill_id"),
                func.coalesce(func.sum(FeePayment.amount_paid), 0).label("paid"),
            )
            .group_by(FeePayment.bill_id)
            .subquery()
        )
        balance = FeeBill.net_amount - func.coalesce(paid.c.paid, 0)
        stmt = (
            select(FeeBillPeriod, FeeBill.id, FeeBill.due_date, FeeBill.net_amount, balance.label("balance"))
            .join(FeeBill, FeeBill.period_id == FeeBillPeriod.id)
            .outerjoin(paid, paid.c.bill_id == FeeBill.id)
            .where(
                FeeBillPeriod.student_id == student_id,
                FeeBillPeriod.status.in_(list(statuses)),
                FeeBill.due_date < before,
                balance > 0,
            )
            .order_by(FeeBill.due_date.asc())
        )
        return [
            OverduePeriod(
                period=_period_from_model(row[0]),
                bill_id=row[1],
                due_date=row[2],
                net_amount=to_decimal(row[3]),
                balance=to_decimal(row[4]),
            )
            for row in self.session.execute(stmt).all()
        ]

    # -----------------------------
    # Writes
    # -----------------------------

    def _insert_ignore(self, model, rows: List[dict], conflict_key: Sequence[str]) -> int:
        table = model.__table__
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(table).values(rows).on_conflict_do_nothing(index_elements=list(conflict_key))
        elif dialect == "sqlite":
            stmt = sqlite_insert(table).values(rows).on_conflict_do_nothing(index_elements=list(conflict_key))
        elif dialect in ("mysql", "mariadb"):
            stmt = insert(table).values(rows).prefix_with("IGNORE")
        else:
            raise PersistenceConflict(f"Insert-if-absent is not supported on the {dialect} dialect", operation="insert")
        try:
            result = self.session.execute(stmt)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceConflict(f"Insert into {table.name} failed: {exc}", operation="insert") from exc
        return max(result.rowcount or 0, 0)

    def insert_fee_cycle(self, cycle: FeeCycle) -> bool:
        row = {
            "id": cycle.id or str(uuid.uuid4()),
            "student_id": cycle.student_id,
            "school_id": cycle.school_id,
            "fee_cycle": cycle.cycle_type,
            "effective_from": cycle.effective_from,
            "effective_to": cycle.effective_to,
            "is_active": cycle.is_active,
            "created_at": datetime.utcnow(),
        }
        return self._insert_ignore(StudentFeeCycle, [row], CYCLE_CONFLICT_KEY) > 0

    def replace_fee_cycle(self, cycle: FeeCycle) -> FeeCycle:
        try:
            # Old cycles are kept for history, only switched off.
            self.session.execute(
                update(StudentFeeCycle)
                .where(
                    StudentFeeCycle.student_id == cycle.student_id,
                    StudentFeeCycle.school_id == cycle.school_id,
                    StudentFeeCycle.is_active.is_(True),
                )
                .values(is_active=False)
            )
            row = self.session.execute(
                select(StudentFeeCycle).where(
                    StudentFeeCycle.student_id == cycle.student_id,
                    StudentFeeCycle.fee_cycle == cycle.cycle_type,
                    StudentFeeCycle.effective_from == cycle.effective_from,
                )
            ).scalar_one_or_none()
            if row is None:
                row = StudentFeeCycle(
                    id=cycle.id or str(uuid.uuid4()),
                    student_id=cycle.student_id,
                    school_id=cycle.school_id,
                    fee_cycle=cycle.cycle_type,
                    effective_from=cycle.effective_from,
                    created_at=datetime.utcnow(),
                )
                self.session.add(row)
            row.effective_to = cycle.effective_to
            row.is_active = True
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceConflict(
                f"Setting fee cycle for student {cycle.student_id} failed: {exc}",
                operation="replace_fee_cycle",
                student_id=cycle.student_id,
            ) from exc
        return _cycle_from_model(row)

    def insert_periods(self, periods: Sequence[BillingPeriod]) -> int:
        if not periods:
            return 0
        now = datetime.utcnow()
        rows = [_period_row(p, now) for p in periods]
        return self._insert_ignore(FeeBillPeriod, rows, PERIOD_CONFLICT_KEY)

    def call_procedure(self, name: str) -> None:
        if not _PROCEDURE_NAME.match(name):
            raise ValueError(f"Invalid procedure name {name!r}")
        dialect = self.session.get_bind().dialect.name
        sql = f"CALL {name}()" if dialect in ("mysql", "mariadb") else f"SELECT {name}()"
        try:
            self.session.execute(text(sql))
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
