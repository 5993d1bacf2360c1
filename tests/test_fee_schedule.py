from datetime import date

import pytest

from utils.errors import FeeLookupError, StudentNotFound
from utils.fee_schedule import (
    dedupe_by_natural_key,
    generate_student_fee_schedule,
    persist_periods,
)
from utils.fee_types import FeeCycle, StudentRecord


def _cycle(cycle_type="monthly", effective_from=date(2024, 1, 1), effective_to=None, student_id="stu-1"):
    return FeeCycle(
        student_id=student_id,
        school_id="school-1",
        cycle_type=cycle_type,
        effective_from=effective_from,
        effective_to=effective_to,
    )


def _student(store, admission_date):
    store.students["stu-1"] = StudentRecord(id="stu-1", school_id="school-1", admission_date=admission_date)


def test_monthly_cycle_covers_every_calendar_month(fake_store):
    fake_store.cycles.append(_cycle())
    periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert len(periods) == 12
    assert [p.period_month for p in periods] == list(range(1, 13))
    assert all(p.period_year == 2024 and p.status == "pending" for p in periods)
    feb = periods[1]
    assert feb.period_start == date(2024, 2, 1)
    assert feb.period_end == date(2024, 2, 29)
    assert periods[3].period_end == date(2024, 4, 30)
    assert periods[-1].period_end == date(2024, 12, 31)


def test_admission_mid_month_starts_with_that_month(fake_store):
    _student(fake_store, date(2024, 6, 15))
    fake_store.cycles.append(_cycle())
    periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert [p.period_month for p in periods] == [6, 7, 8, 9, 10, 11, 12]
    assert periods[0].period_start == date(2024, 6, 1)


def test_monthly_stops_at_effective_to(fake_store):
    fake_store.cycles.append(_cycle(effective_to=date(2024, 3, 15)))
    periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert [p.period_month for p in periods] == [1, 2, 3]
    assert periods[-1].period_end == date(2024, 3, 31)


def test_monthly_window_starts_at_earlier_admission(fake_store):
    # No clamp to Jan 1: a cycle running since the previous September yields those months too.
    _student(fake_store, date(2023, 9, 1))
    fake_store.cycles.append(_cycle(effective_from=date(2023, 9, 1)))
    periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert len(periods) == 16
    assert (periods[0].period_year, periods[0].period_month) == (2023, 9)
    assert (periods[-1].period_year, periods[-1].period_month) == (2024, 12)


def test_quarter_starting_before_effective_from_is_skipped(fake_store):
    fake_store.cycles.append(_cycle("quarterly", effective_from=date(2024, 4, 2)))
    periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert [p.period_quarter for p in periods] == [3, 4]
    assert periods[0].period_start == date(2024, 7, 1)
    assert periods[0].period_end == date(2024, 9, 30)
    assert all(p.period_month is None for p in periods)


def test_quarter_starting_before_admission_is_skipped(fake_store):
    _student(fake_store, date(2024, 1, 15))
    fake_store.cycles.append(_cycle("quarterly"))
    periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert [p.period_quarter for p in periods] == [2, 3, 4]


def test_quarters_after_effective_to_are_skipped(fake_store):
    fake_store.cycles.append(_cycle("quarterly", effective_to=date(2024, 7, 1)))
    periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert [p.period_quarter for p in periods] == [1, 2, 3]


def test_yearly_period_spans_the_calendar_year(fake_store):
    fake_store.cycles.append(_cycle("yearly"))
    periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert len(periods) == 1
    assert (periods[0].period_start, periods[0].period_end) == (date(2024, 1, 1), date(2024, 12, 31))
    assert periods[0].period_month is None and periods[0].period_quarter is None


def test_yearly_skipped_when_admitted_after_year_start(fake_store):
    _student(fake_store, date(2024, 3, 1))
    fake_store.cycles.append(_cycle("yearly"))

    assert generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024) == []


def test_one_time_cycle_generates_nothing(fake_store):
    fake_store.cycles.append(_cycle("one-time"))

    assert generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024) == []
    assert fake_store.periods == {}


def test_missing_admission_date_falls_back_to_year_start(fake_store):
    _student(fake_store, None)
    fake_store.cycles.append(_cycle("quarterly"))

    periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)
    assert [p.period_quarter for p in periods] == [1, 2, 3, 4]


def test_default_monthly_cycle_is_created_when_none_exist(fake_store):
    periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2025)

    assert len(periods) == 12
    assert len(fake_store.cycles) == 1
    cycle = fake_store.cycles[0]
    assert cycle.cycle_type == "monthly"
    assert cycle.effective_from == date(2025, 1, 1)
    assert cycle.effective_to is None


def test_default_cycle_write_failure_is_not_fatal(fake_store, caplog):
    fake_store.fail_on.add("insert_fee_cycle")
    with caplog.at_level("WARNING", logger="utils.fee_schedule"):
        periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert len(periods) == 12
    assert fake_store.cycles == []
    assert any(getattr(r, "outcome", None) == "persistence_conflict" for r in caplog.records)


def test_second_run_inserts_nothing_new(fake_store):
    fake_store.cycles.append(_cycle())
    first = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)
    second = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert len(first) == len(second) == 12
    assert len(fake_store.periods) == 12
    outcome = persist_periods(fake_store, second)
    assert outcome.inserted == 0
    assert outcome.existing == 12


def test_overlapping_cycles_do_not_duplicate_periods(fake_store):
    fake_store.cycles.append(_cycle())
    fake_store.cycles.append(_cycle(effective_from=date(2024, 7, 1)))
    periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert len(periods) == 18
    assert len(dedupe_by_natural_key(periods)) == 12
    assert len(fake_store.periods) == 12


def test_period_write_failure_is_logged_and_periods_returned(fake_store, caplog):
    fake_store.cycles.append(_cycle())
    fake_store.fail_on.add("insert_periods")
    with caplog.at_level("WARNING", logger="utils.fee_schedule"):
        periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert len(periods) == 12
    records = [r for r in caplog.records if getattr(r, "outcome", None) == "persistence_conflict"]
    assert records and records[0].student_id == "stu-1"


def test_unknown_student_raises(fake_store):
    fake_store.cycles.append(_cycle(student_id="ghost"))
    with pytest.raises(StudentNotFound) as excinfo:
        generate_student_fee_schedule(fake_store, "ghost", "school-1", 2024)
    assert "ghost" in str(excinfo.value)
    assert excinfo.value.student_id == "ghost"


def test_cycle_lookup_failure_raises_lookup_error(fake_store):
    fake_store.fail_on.add("list_fee_cycles")
    with pytest.raises(FeeLookupError) as excinfo:
        generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)
    assert "fee cycles" in str(excinfo.value)
    assert isinstance(excinfo.value, LookupError)
    assert fake_store.periods == {}


def test_student_lookup_failure_raises_lookup_error(fake_store):
    fake_store.cycles.append(_cycle())
    fake_store.fail_on.add("get_student")
    with pytest.raises(FeeLookupError):
        generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)


def test_unknown_student_gets_no_default_cycle(fake_store):
    with pytest.raises(StudentNotFound):
        generate_student_fee_schedule(fake_store, "ghost", "school-1", 2024)
    assert fake_store.cycles == []


def test_inverted_cycle_is_skipped_and_logged(fake_store, caplog):
    fake_store.cycles.append(_cycle())
    fake_store.cycles.append(_cycle("yearly", effective_from=date(2024, 6, 1), effective_to=date(2024, 1, 1)))
    with caplog.at_level("WARNING", logger="utils.fee_schedule"):
        periods = generate_student_fee_schedule(fake_store, "stu-1", "school-1", 2024)

    assert len(periods) == 12
    assert {p.period_type for p in periods} == {"monthly"}
    assert any(getattr(r, "outcome", None) == "invalid_cycle" for r in caplog.records)
