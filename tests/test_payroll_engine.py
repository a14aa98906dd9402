from datetime import date, timedelta
from decimal import Decimal

import pytest

from hrms_engine.common.auth import Actor
from hrms_engine.common.errors import Forbidden, PayrollRangeError
from hrms_engine.models.attendance import AttendanceRecord, Holiday
from hrms_engine.services import attendance_engine as ae
from hrms_engine.services import leave_ledger as ll
from hrms_engine.services.payroll_engine import attendance_stats, clamp_extra_days, compute_payroll
from hrms_engine.services.payslip_service import build_payslip
from hrms_engine.services.tz_calendar import iter_days

from conftest import make_employee, utc

JUNE_HOLIDAYS = (date(2026, 6, 6), date(2026, 6, 13), date(2026, 6, 20), date(2026, 6, 27))
PAID_LEAVE_DAY = date(2026, 6, 10)
ABSENT_DAYS = (date(2026, 6, 15), date(2026, 6, 16))


def _worked(session, emp, day, status="PunchedOut", mode="Office"):
    session.add(AttendanceRecord(
        company_id=emp.company_id, employee_id=emp.id, work_date=day,
        status=status, mode=mode, net_work_seconds=9 * 3600,
    ))


@pytest.fixture
def june(session, company, employee, hr):
    """30-day month: 4 holidays, 1 paid leave, 2 absent, the rest worked."""
    for d in JUNE_HOLIDAYS:
        ll.mark_holiday(hr, company.id, d.isoformat(), "Weekly off")

    lr = ll.apply_leave(employee.id, "Paid", "Full Day", PAID_LEAVE_DAY.isoformat(), PAID_LEAVE_DAY.isoformat(), "Trip")
    ll.decide_leave(hr, lr.id, "Approved")

    skip = set(JUNE_HOLIDAYS) | {PAID_LEAVE_DAY} | set(ABSENT_DAYS)
    for d in iter_days(date(2026, 6, 1), date(2026, 6, 30)):
        if d not in skip:
            _worked(session, employee, d)
    session.commit()
    return employee


def test_thirty_day_month(june):
    snap = compute_payroll(june.id, "2026-06-01", "2026-06-30")
    assert snap.total_days == 30
    assert snap.total_payable_days == Decimal("28")
    assert snap.holiday_count == 4
    assert snap.unpaid_leave_count == 0
    assert snap.paid_leave_days == 1
    assert snap.present_days == 23
    assert snap.absent_days == 2
    # 30000 / 30 per day
    assert snap.estimated_salary == Decimal("28000.00")

    by_day = {e.date: e for e in snap.breakdown}
    assert by_day["2026-06-06"].rule == "holiday"
    assert by_day["2026-06-10"].rule == "paid_leave"
    assert by_day["2026-06-15"].rule == "absent"
    assert by_day["2026-06-15"].amount == Decimal("0.00")
    assert by_day["2026-06-01"].amount == Decimal("1000.00")
    assert "Holidays(4)" in snap.summary


def test_payroll_is_reproducible(june):
    a = compute_payroll(june.id, "2026-06-01", "2026-06-30").to_dict()
    b = compute_payroll(june.id, "2026-06-01", "2026-06-30").to_dict()
    assert a == b
    assert a["estimated_salary"] == "28000.00"
    assert a["breakdown"][0]["rate"] == "1000.00"


def test_manual_absent_shows_up_in_payroll(june, hr):
    ae.manual_correct(hr, june.id, "2026-06-03", "Absent", "Unauthorised absence")
    snap = compute_payroll(june.id, "2026-06-01", "2026-06-30")
    assert snap.total_payable_days == Decimal("27")
    assert snap.estimated_salary == Decimal("27000.00")
    assert {e.date: e.rule for e in snap.breakdown}["2026-06-03"] == "absent"


def test_holiday_wins_over_attendance_and_leave(session, company, employee, hr):
    ll.mark_holiday(hr, company.id, "2026-06-06", "Festival")
    _worked(session, employee, date(2026, 6, 6))
    session.commit()
    lr = ll.apply_leave(employee.id, "Unpaid", "Full Day", "2026-06-06", "2026-06-06", "Travel")
    ll.decide_leave(hr, lr.id, "Approved")

    snap = compute_payroll(employee.id, "2026-06-06", "2026-06-06")
    assert snap.breakdown[0].rule == "holiday"
    assert snap.total_payable_days == 1
    assert snap.unpaid_leave_count == 0


def test_unpaid_and_half_day_leave(session, company, employee, hr):
    unpaid = ll.apply_leave(employee.id, "Unpaid", "Full Day", "2026-06-01", "2026-06-02", "Personal")
    half_paid = ll.apply_leave(employee.id, "Casual", "Half Day", "2026-06-03", "2026-06-03", "Bank")
    half_unpaid = ll.apply_leave(employee.id, "Unpaid", "Half Day", "2026-06-04", "2026-06-04", "Bank")
    for lr in (unpaid, half_paid, half_unpaid):
        ll.decide_leave(hr, lr.id, "Approved")
    # the paid half day also has a worked half
    _worked(session, employee, date(2026, 6, 3), status="HalfDay")
    session.commit()

    snap = compute_payroll(employee.id, "2026-06-01", "2026-06-04")
    weights = [e.weight for e in snap.breakdown]
    assert weights == [Decimal("0"), Decimal("0"), Decimal("1.0"), Decimal("0")]
    assert snap.unpaid_leave_count == Decimal("2.5")
    assert snap.total_payable_days == 1


def test_attendance_statuses_and_wfh(session, employee):
    _worked(session, employee, date(2026, 6, 1), status="HalfDay")
    _worked(session, employee, date(2026, 6, 2), status="PunchedOut", mode="WFH")
    _worked(session, employee, date(2026, 6, 3), status="OnLeave")
    _worked(session, employee, date(2026, 6, 4), status="Absent")
    _worked(session, employee, date(2026, 6, 5), status="Present")
    session.commit()

    snap = compute_payroll(employee.id, "2026-06-01", "2026-06-06")
    assert [e.rule for e in snap.breakdown] == ["half_day", "wfh", "on_leave", "absent", "present", "absent"]
    assert snap.total_payable_days == Decimal("3.5")
    assert snap.wfh_days == 1
    assert snap.half_days == 1


def test_wfh_leave_alone_is_not_payable(session, employee, hr):
    lr = ll.apply_leave(employee.id, "WFH", "Full Day", "2026-06-08", "2026-06-08", "Home")
    ll.decide_leave(hr, lr.id, "Approved")
    snap = compute_payroll(employee.id, "2026-06-08", "2026-06-08")
    assert snap.breakdown[0].rule == "absent"
    assert snap.total_payable_days == 0


def test_cross_month_range_uses_each_months_rate(session, company):
    emp = make_employee(session, company, "E050", salary="31000")
    _worked(session, emp, date(2026, 1, 31))
    _worked(session, emp, date(2026, 2, 1))
    session.commit()

    snap = compute_payroll(emp.id, "2026-01-31", "2026-02-01")
    # 31000/31 + 31000/28
    assert snap.estimated_salary == Decimal("2107.14")
    assert [e.amount for e in snap.breakdown] == [Decimal("1000.00"), Decimal("1107.14")]


def test_default_range_is_current_local_month(session, employee):
    # 20:00 UTC on Jan 31 is already February in Kolkata
    snap = compute_payroll(employee.id, now=utc(2026, 1, 31, 20, 0))
    assert (snap.start_date, snap.end_date) == ("2026-02-01", "2026-02-28")
    assert snap.total_days == 28


def test_range_errors(session, employee):
    with pytest.raises(PayrollRangeError):
        compute_payroll(employee.id, "2026-06-30", "2026-06-01")
    with pytest.raises(PayrollRangeError):
        compute_payroll(employee.id, "2025-01-01", "2026-01-02")
    with pytest.raises(PayrollRangeError):
        compute_payroll(employee.id, "June", "2026-06-30")
    with pytest.raises(PayrollRangeError):
        compute_payroll(424242, "2026-06-01", "2026-06-30")

    # exactly the maximum is fine
    start = date(2025, 1, 1)
    snap = compute_payroll(employee.id, start.isoformat(), (start + timedelta(days=365)).isoformat())
    assert snap.total_days == 366


def test_payroll_does_not_write(session, june):
    before = (AttendanceRecord.query.count(), Holiday.query.count())
    compute_payroll(june.id, "2026-06-01", "2026-06-30")
    assert (AttendanceRecord.query.count(), Holiday.query.count()) == before


def test_extra_days_are_capped_by_the_unpaid_room(june):
    snap = compute_payroll(june.id, "2026-06-01", "2026-06-30", extra_days=5)
    # only two days in the month were unpaid
    assert snap.extra_days == 2
    assert snap.total_payable_days == 30
    assert snap.extra_amount == Decimal("2000.00")
    assert snap.estimated_salary == Decimal("30000.00")
    assert "Extra(2)" in snap.summary


def test_extra_days_clamp(session, employee):
    assert clamp_extra_days("abc") == 0
    assert clamp_extra_days(None) == 0
    assert clamp_extra_days(-3) == 0
    assert clamp_extra_days("4") == 4

    # nothing recorded in June: 50 requested, 10 granted at 30000/30
    snap = compute_payroll(employee.id, "2026-06-01", "2026-06-30", extra_days=50)
    assert snap.extra_days == 10
    assert snap.total_payable_days == 10
    assert snap.estimated_salary == Decimal("10000.00")

    plain = compute_payroll(employee.id, "2026-06-01", "2026-06-30", extra_days=0)
    assert plain.extra_days == 0
    assert "Extra" not in plain.summary


def test_attendance_stats_cover_month_to_date(session, employee):
    _worked(session, employee, date(2026, 6, 1))
    _worked(session, employee, date(2026, 6, 2), status="HalfDay")
    session.commit()

    # 11:30 IST on June 3rd
    stats = attendance_stats(employee.id, now=utc(2026, 6, 3, 6, 0))
    assert (stats["start_date"], stats["end_date"]) == ("2026-06-01", "2026-06-03")
    assert stats["present"] == 1
    assert stats["half_days"] == 1
    assert stats["absent"] == 1
    assert stats["payable_days"] == 1.5


def test_payslip_reconciles_to_payroll(june, hr):
    slip = build_payslip(hr, june.id, "2026-06-01", "2026-06-30")
    assert slip["employee"]["code"] == "E001"
    assert slip["attendance"]["days_in_period"] == 30
    assert slip["attendance"]["lop_days"] == 2.0
    assert [(c["code"], c["amount"]) for c in slip["earnings"]] == [("BASIC", "30000.00")]
    assert [(c["code"], c["amount"]) for c in slip["deductions"]] == [("LOP", "2000.00")]
    assert slip["totals"]["net_pay"] == "28000.00"

    with_extra = build_payslip(hr, june.id, "2026-06-01", "2026-06-30", extra_days=1)
    assert [c["code"] for c in with_extra["earnings"]] == ["BASIC", "EXTRA"]
    assert with_extra["totals"]["gross_pay"] == "31000.00"
    assert with_extra["totals"]["net_pay"] == "29000.00"
    assert with_extra["attendance"]["extra_days"] == 1.0


def test_payslip_requires_payroll_capability(session, company, employee, hr):
    clerk = Actor(user_id=999, company_id=company.id, roles=frozenset({"employee"}))
    with pytest.raises(Forbidden):
        build_payslip(clerk, employee.id, "2026-06-01", "2026-06-30")

    outsider = Actor(user_id=hr.user_id, company_id=company.id + 1, roles=frozenset({"hr"}))
    with pytest.raises(Forbidden):
        build_payslip(outsider, employee.id, "2026-06-01", "2026-06-30")

    with pytest.raises(PayrollRangeError):
        build_payslip(hr, 424242, "2026-06-01", "2026-06-30")
