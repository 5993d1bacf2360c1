import os
import sys
from datetime import date

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app
from config import TestConfig
from extensions import db as _db
from models import Student
from utils.errors import PersistenceConflict
from utils.fee_store import FeeStore, SqlAlchemyFeeStore
from utils.fee_types import StudentRecord


class FakeFeeStore(FeeStore):
    """In-memory FeeStore honouring the same natural-key rules as the SQL store."""

    def __init__(self, students=None, cycles=None):
        self.students = {s.id: s for s in (students or [])}
        self.cycles = list(cycles or [])
        self.periods = {}
        self.procedures: list[str] = []
        self.fail_on: set[str] = set()

    def _maybe_fail(self, name):
        if name in self.fail_on:
            raise RuntimeError(f"{name} unavailable")

    def get_student(self, student_id):
        self._maybe_fail("get_student")
        return self.students.get(student_id)

    def list_active_student_ids(self, school_id):
        return [s.id for s in self.students.values() if s.school_id == school_id]

    def list_fee_cycles(self, student_id, school_id=None):
        self._maybe_fail("list_fee_cycles")
        found = [
            c for c in self.cycles
            if c.student_id == student_id and c.is_active and (school_id is None or c.school_id == school_id)
        ]
        return sorted(found, key=lambda c: c.effective_from)

    def insert_fee_cycle(self, cycle):
        if "insert_fee_cycle" in self.fail_on:
            raise PersistenceConflict("cycle insert rejected")
        key = (cycle.student_id, cycle.cycle_type, cycle.effective_from)
        if any((c.student_id, c.cycle_type, c.effective_from) == key for c in self.cycles):
            return False
        self.cycles.append(cycle)
        return True

    def insert_periods(self, periods):
        if "insert_periods" in self.fail_on:
            raise PersistenceConflict("period insert rejected")
        inserted = 0
        for p in periods:
            if p.natural_key not in self.periods:
                self.periods[p.natural_key] = p
                inserted += 1
        return inserted

    def list_periods(self, student_id, statuses=None):
        self._maybe_fail("list_periods")
        found = [
            p for p in self.periods.values()
            if p.student_id == student_id and (statuses is None or p.status in statuses)
        ]
        return sorted(found, key=lambda p: p.period_start)

    def list_overdue_periods(self, student_id, statuses, before):
        self._maybe_fail("list_overdue_periods")
        return []

    def call_procedure(self, name):
        self._maybe_fail("call_procedure")
        self.procedures.append(name)


@pytest.fixture
def fake_store():
    return FakeFeeStore(students=[StudentRecord(id="stu-1", school_id="school-1", admission_date=date(2024, 1, 1))])


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return SqlAlchemyFeeStore(_db.session)


@pytest.fixture
def make_student(app):
    def _make(student_id="stu-1", school_id="school-1", admission_date=date(2024, 1, 1), **kwargs):
        student = Student(
            id=student_id,
            school_id=school_id,
            name=kwargs.pop("name", f"Student {student_id}"),
            admission_date=admission_date,
            **kwargs,
        )
        _db.session.add(student)
        _db.session.commit()
        return student

    return _make


@pytest.fixture
def sign_in(client):
    def _sign_in(role="clerk", school_id="school-1"):
        with client.session_transaction() as sess:
            sess["school_id"] = school_id
            sess["role"] = role

    return _sign_in
