from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, session

from extensions import db
from utils import roles_required
from utils.errors import FeeBillingError, StudentNotFound
from utils.fee_schedule import generate_student_fee_schedule
from utils.fee_store import SqlAlchemyFeeStore
from utils.fee_types import CYCLE_TYPES, FeeCycle, parse_iso_date
from utils.ledger import (
    get_overdue_periods,
    get_pending_periods,
    get_student_total_dues,
    mark_overdue_periods,
)


fee_schedule_bp = Blueprint("fee_schedule", __name__, url_prefix="/fees")

STAFF_ROLES = ("principal", "clerk")
READ_ROLES = ("principal", "clerk", "student", "parent")


def _store() -> SqlAlchemyFeeStore:
    return SqlAlchemyFeeStore(db.session)


def _school_id() -> str:
    return str(session.get("school_id"))


def _visible_student(store: SqlAlchemyFeeStore, student_id: str):
    """The student if it belongs to the signed-in school, else None."""
    student = store.get_student(student_id)
    if student is None or str(student.school_id) != _school_id():
        return None
    return student


def _error(exc: Exception, tag: str):
    current_app.logger.error("[%s] %s", tag, exc)
    status = 404 if isinstance(exc, StudentNotFound) else 500
    return jsonify({"error": str(exc)}), status


# -----------------------------
# Fee cycles
# -----------------------------


@fee_schedule_bp.route("/student-cycles/<student_id>", methods=["GET"])
@roles_required(*READ_ROLES)
def student_cycles(student_id: str):
    store = _store()
    try:
        cycles = store.list_fee_cycles(student_id, school_id=_school_id())
    except Exception as exc:
        return _error(exc, "student-cycles")
    cycles.sort(key=lambda c: c.effective_from, reverse=True)
    return jsonify({"cycles": [c.as_dict() for c in cycles]})


@fee_schedule_bp.route("/student-cycles", methods=["POST"])
@roles_required(*STAFF_ROLES)
def set_student_cycle():
    payload = request.get_json(silent=True) or {}
    student_id = payload.get("student_id")
    cycle_type = payload.get("fee_cycle")
    if not student_id or not cycle_type or not payload.get("effective_from"):
        return jsonify({"error": "student_id, fee_cycle and effective_from are required"}), 400
    if not isinstance(cycle_type, str) or cycle_type not in CYCLE_TYPES:
        return jsonify({"error": f"fee_cycle must be one of {', '.join(sorted(CYCLE_TYPES))}"}), 400
    try:
        effective_from = parse_iso_date(payload.get("effective_from"), "effective_from")
        effective_to = parse_iso_date(payload.get("effective_to"), "effective_to")
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    cycle = FeeCycle(
        student_id=str(student_id),
        school_id=_school_id(),
        cycle_type=cycle_type,
        effective_from=effective_from,
        effective_to=effective_to,
    )
    if not cycle.has_valid_range:
        return jsonify({"error": "effective_to must not be before effective_from"}), 400

    store = _store()
    if _visible_student(store, cycle.student_id) is None:
        return jsonify({"error": f"Student {student_id} not found"}), 404
    try:
        saved = store.replace_fee_cycle(cycle)
    except FeeBillingError as exc:
        current_app.logger.error("[set-student-cycle] %s", exc)
        return jsonify({"error": str(exc)}), 400
    current_app.logger.info(
        "Fee cycle for student %s set to %s from %s", saved.student_id, saved.cycle_type, saved.effective_from
    )
    return jsonify({"cycle": saved.as_dict()}), 201


# -----------------------------
# Billing periods
# -----------------------------


@fee_schedule_bp.route("/generate-schedule", methods=["POST"])
@roles_required(*STAFF_ROLES)
def generate_schedule():
    payload = request.get_json(silent=True) or {}
    student_id = payload.get("student_id")
    academic_year = payload.get("academic_year")
    if not student_id or not academic_year:
        return jsonify({"error": "student_id and academic_year are required"}), 400
    try:
        academic_year = int(academic_year)
    except (TypeError, ValueError):
        return jsonify({"error": "academic_year must be a year, e.g. 2024"}), 400
    if not 1900 <= academic_year <= 9999:
        return jsonify({"error": "academic_year must be a year, e.g. 2024"}), 400

    store = _store()
    if _visible_student(store, str(student_id)) is None:
        return jsonify({"error": f"Student {student_id} not found"}), 404
    try:
        periods = generate_student_fee_schedule(store, str(student_id), _school_id(), academic_year)
    except FeeBillingError as exc:
        return _error(exc, "generate-schedule")
    return jsonify({"message": "Fee schedule generated successfully", "periods": len(periods)})


@fee_schedule_bp.route("/periods/pending/<student_id>", methods=["GET"])
@roles_required(*READ_ROLES)
def pending_periods(student_id: str):
    store = _store()
    if _visible_student(store, student_id) is None:
        return jsonify({"error": f"Student {student_id} not found"}), 404
    try:
        periods = get_pending_periods(store, student_id)
    except FeeBillingError as exc:
        return _error(exc, "pending-periods")
    return jsonify({"periods": [p.as_dict() for p in periods]})


@fee_schedule_bp.route("/periods/overdue/<student_id>", methods=["GET"])
@roles_required(*READ_ROLES)
def overdue_periods(student_id: str):
    store = _store()
    if _visible_student(store, student_id) is None:
        return jsonify({"error": f"Student {student_id} not found"}), 404
    try:
        periods = get_overdue_periods(store, student_id)
    except FeeBillingError as exc:
        return _error(exc, "overdue-periods")
    return jsonify({"periods": [p.as_dict() for p in periods]})


@fee_schedule_bp.route("/dues/<student_id>", methods=["GET"])
@roles_required(*READ_ROLES)
def student_dues(student_id: str):
    store = _store()
    if _visible_student(store, student_id) is None:
        return jsonify({"error": f"Student {student_id} not found"}), 404
    try:
        dues = get_student_total_dues(store, student_id)
    except FeeBillingError as exc:
        return _error(exc, "student-dues")
    return jsonify({"dues": dues.as_dict()})


@fee_schedule_bp.route("/periods/mark-overdue", methods=["POST"])
@roles_required("principal")
def run_mark_overdue():
    try:
        mark_overdue_periods(_store())
    except FeeBillingError as exc:
        return _error(exc, "mark-overdue")
    return jsonify({"message": "Overdue periods marked"})
