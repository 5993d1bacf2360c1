import argparse
import os
import sys

# Ensure project root is importable when running from scripts/
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app import app  # type: ignore
from extensions import db  # type: ignore
from utils.errors import FeeBillingError  # type: ignore
from utils.fee_schedule import generate_student_fee_schedule  # type: ignore
from utils.fee_store import SqlAlchemyFeeStore  # type: ignore


def generate_for_school(store, school_id: str, year: int, student_ids=None) -> dict:
    """Generate billing periods for every listed (or every active) student of a school.

    Returns a summary with per-student period counts and failures; one student
    failing does not stop the others.
    """
    ids = list(student_ids) if student_ids else store.list_active_student_ids(school_id)
    summary = {"students": len(ids), "periods": 0, "generated": {}, "failed": {}}
    for student_id in ids:
        try:
            periods = generate_student_fee_schedule(store, student_id, school_id, year)
        except FeeBillingError as exc:
            summary["failed"][student_id] = str(exc)
            continue
        summary["generated"][student_id] = len(periods)
        summary["periods"] += len(periods)
    return summary


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Generate fee billing periods for a school's students")
    ap.add_argument("--school-id", required=True, help="School id the students belong to")
    ap.add_argument("--year", type=int, required=True, help="Academic (calendar) year, e.g. 2024")
    ap.add_argument("--student-id", action="append", dest="student_ids", help="Limit to this student (repeatable)")
    args = ap.parse_args(argv)

    with app.app_context():
        summary = generate_for_school(SqlAlchemyFeeStore(db.session), args.school_id, args.year, args.student_ids)

    print(f"Students: {summary['students']}  Periods: {summary['periods']}  Failed: {len(summary['failed'])}")
    for student_id, message in summary["failed"].items():
        print(f"  ! {student_id}: {message}")
    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
