from datetime import date, timedelta

import pytest
from sqlalchemy import text

from hrms_engine.common.auth import Actor
from hrms_engine.common.errors import (
    Forbidden, InvalidTransition, MissingDailyReport, OutOfGeofence, ValidationError, VerificationFailed,
)
from hrms_engine.models.attendance import AttendanceBreak, AttendanceRecord
from hrms_engine.models.face_log import PunchAttemptLog
from hrms_engine.services import attendance_engine as ae
from hrms_engine.services import leave_ledger
from hrms_engine.services.attendance_engine import PunchLocation
from hrms_engine.services.biometric import Capture
from hrms_engine.services.tz_calendar import as_utc

from conftest import DESCRIPTOR, OFFICE_LAT, OFFICE_LNG, make_employee, utc

AT_OFFICE = PunchLocation(OFFICE_LAT, OFFICE_LNG)
FIVE_KM_AWAY = PunchLocation(OFFICE_LAT + 0.045, OFFICE_LNG)
GOOD_FACE = Capture(DESCRIPTOR, True, "faces/in.jpg")
REPORT = "Closed three tickets and reviewed payroll export."

# 09:30 IST on 2026-01-12
MORNING = utc(2026, 1, 12, 4, 0)


def test_punch_in_then_out(session, employee):
    rec = ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)
    assert rec.status == "Present"
    assert rec.work_date == date(2026, 1, 12)
    assert rec.in_zone == "HQ"

    rec = ae.punch_out(employee.id, GOOD_FACE, AT_OFFICE, REPORT, now=MORNING + timedelta(hours=9))
    assert rec.status == "PunchedOut"
    assert rec.net_work_hours == 9.0
    assert rec.daily_report == REPORT

    logs = PunchAttemptLog.query.filter_by(employee_id=employee.id).order_by(PunchAttemptLog.id).all()
    assert [(l.punch_type, l.result) for l in logs] == [("IN", "MARKED"), ("OUT", "MARKED")]


def test_local_day_follows_company_timezone(session, employee):
    # 19:00 UTC on the 11th is already the 12th in Kolkata
    rec = ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=utc(2026, 1, 11, 19, 0))
    assert rec.work_date == date(2026, 1, 12)


def test_breaks_reduce_net_work(session, employee):
    ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)
    ae.start_break(employee.id, now=MORNING + timedelta(hours=2))
    rec = ae.end_break(employee.id, now=MORNING + timedelta(hours=2, minutes=30))
    assert rec.status == "Present"

    # second break left open; punch-out closes it
    ae.start_break(employee.id, now=MORNING + timedelta(hours=7))
    rec = ae.punch_out(employee.id, GOOD_FACE, AT_OFFICE, REPORT, now=MORNING + timedelta(hours=7, minutes=15))

    assert rec.status == "PunchedOut"
    assert len(rec.breaks) == 2
    assert all(b.ended_at is not None for b in rec.breaks)
    assert as_utc(rec.breaks[-1].ended_at) == MORNING + timedelta(hours=7, minutes=15)
    assert rec.net_work_seconds == 7 * 3600 + 15 * 60 - 45 * 60


def test_break_transitions_are_checked(session, employee):
    with pytest.raises(InvalidTransition):
        ae.start_break(employee.id, now=MORNING)

    ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)
    with pytest.raises(InvalidTransition):
        ae.end_break(employee.id, now=MORNING)

    ae.start_break(employee.id, now=MORNING + timedelta(hours=1))
    with pytest.raises(InvalidTransition):
        ae.start_break(employee.id, now=MORNING + timedelta(hours=1, minutes=5))


def test_second_punch_in_same_day_is_invalid(session, employee):
    ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)
    with pytest.raises(InvalidTransition):
        ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING + timedelta(hours=1))
    assert AttendanceRecord.query.filter_by(employee_id=employee.id).count() == 1


def test_racing_punch_ins_leave_one_record(session, employee, monkeypatch):
    first = ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)

    # the loser read "no record yet" before the winner committed
    monkeypatch.setattr(ae, "_record_for", lambda employee_id, day: None)
    with pytest.raises(InvalidTransition):
        ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING + timedelta(seconds=1))

    rows = AttendanceRecord.query.filter_by(employee_id=employee.id).all()
    assert [r.id for r in rows] == [first.id]
    assert as_utc(rows[0].punch_in_time) == MORNING

    rejected = PunchAttemptLog.query.filter_by(employee_id=employee.id, result="REJECTED").one()
    assert rejected.error_code == "INVALID_TRANSITION"


def _concurrent_writer_after_read(monkeypatch, session):
    """Every record read is immediately overtaken by another committed change."""
    read = ae._record_for

    def overtaken(employee_id, day):
        rec = read(employee_id, day)
        if rec is not None:
            session.execute(
                text("UPDATE attendance_records SET version = version + 1 WHERE id = :id"),
                {"id": rec.id},
            )
        return rec

    monkeypatch.setattr(ae, "_record_for", overtaken)


def test_break_start_on_stale_record_is_invalid(session, employee, monkeypatch):
    ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)

    _concurrent_writer_after_read(monkeypatch, session)
    with pytest.raises(InvalidTransition):
        ae.start_break(employee.id, now=MORNING + timedelta(hours=1))

    rec = AttendanceRecord.query.filter_by(employee_id=employee.id).one()
    assert rec.status == "Present"
    assert AttendanceBreak.query.count() == 0

    monkeypatch.undo()
    rec = ae.start_break(employee.id, now=MORNING + timedelta(hours=1))
    assert rec.status == "OnBreak"
    assert AttendanceBreak.query.count() == 1


def test_punch_out_on_stale_record_is_invalid(session, employee, monkeypatch):
    ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)

    _concurrent_writer_after_read(monkeypatch, session)
    with pytest.raises(InvalidTransition):
        ae.punch_out(employee.id, GOOD_FACE, AT_OFFICE, REPORT, now=MORNING + timedelta(hours=8))

    rec = AttendanceRecord.query.filter_by(employee_id=employee.id).one()
    assert rec.status == "Present"
    assert rec.punch_out_time is None

    out = PunchAttemptLog.query.filter_by(employee_id=employee.id, punch_type="OUT").one()
    assert (out.result, out.error_code) == ("REJECTED", "INVALID_TRANSITION")


def test_face_mismatch_creates_no_record(session, employee):
    with pytest.raises(VerificationFailed):
        ae.punch_in(employee.id, Capture([0.2] * 128, True), AT_OFFICE, now=MORNING)
    with pytest.raises(VerificationFailed):
        ae.punch_in(employee.id, Capture(DESCRIPTOR, False), AT_OFFICE, now=MORNING)

    assert AttendanceRecord.query.count() == 0
    logs = PunchAttemptLog.query.order_by(PunchAttemptLog.id).all()
    assert [l.face_status for l in logs] == ["MISMATCH", "NO_FACE"]
    assert all(l.result == "REJECTED" for l in logs)


def test_outside_geofence_creates_no_record(session, employee):
    with pytest.raises(OutOfGeofence):
        ae.punch_in(employee.id, GOOD_FACE, FIVE_KM_AWAY, now=MORNING)
    with pytest.raises(OutOfGeofence):
        ae.punch_in(employee.id, GOOD_FACE, None, now=MORNING)

    assert AttendanceRecord.query.count() == 0
    log_row = PunchAttemptLog.query.filter_by(location_status="OUTSIDE_GEOFENCE").one()
    assert log_row.distance_m == pytest.approx(5004, rel=1e-2)


@pytest.mark.parametrize("bad", [("abc", OFFICE_LNG), (float("nan"), OFFICE_LNG), {"lat": OFFICE_LAT, "lng": "inf"}])
def test_unusable_coordinates_are_rejected_as_missing(session, employee, bad):
    with pytest.raises(OutOfGeofence):
        ae.punch_in(employee.id, GOOD_FACE, bad, now=MORNING)

    assert AttendanceRecord.query.count() == 0
    row = PunchAttemptLog.query.one()
    assert row.location_status == "NO_COORDINATES"
    assert (row.req_lat, row.req_lng) == (None, None)


def test_wfh_punch_with_unusable_coordinates(session, employee, hr):
    lr = leave_ledger.apply_leave(employee.id, "WFH", "Full Day", "2026-01-12", "2026-01-12", "Plumber visit")
    leave_ledger.decide_leave(hr, lr.id, "Approved")

    rec = ae.punch_in(employee.id, GOOD_FACE, ("abc", "def"), mode="WFH", now=MORNING)
    assert rec.status == "Present"
    assert (rec.in_lat, rec.in_lng) == (None, None)

    rec = ae.punch_out(employee.id, GOOD_FACE, (float("nan"), OFFICE_LNG), REPORT, now=MORNING + timedelta(hours=8))
    assert rec.status == "PunchedOut"
    assert rec.out_lat is None


def test_company_without_zones_rejects_office_punch(session, company, employee):
    company.locations.delete()
    session.commit()
    with pytest.raises(OutOfGeofence):
        ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)


def test_wfh_requires_approved_leave(session, employee, hr):
    with pytest.raises(OutOfGeofence):
        ae.punch_in(employee.id, GOOD_FACE, FIVE_KM_AWAY, mode="WFH", now=MORNING)

    lr = leave_ledger.apply_leave(employee.id, "work from home", "Full Day", "2026-01-12", "2026-01-12", "Plumber visit")
    leave_ledger.decide_leave(hr, lr.id, "Approved")

    rec = ae.punch_in(employee.id, GOOD_FACE, FIVE_KM_AWAY, mode="WFH", now=MORNING)
    assert rec.mode == "WFH"
    # WFH punch-out also skips the geofence
    rec = ae.punch_out(employee.id, GOOD_FACE, FIVE_KM_AWAY, REPORT, now=MORNING + timedelta(hours=8))
    assert rec.status == "PunchedOut"


def test_punch_out_requires_daily_report(session, employee):
    ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)
    with pytest.raises(MissingDailyReport):
        ae.punch_out(employee.id, GOOD_FACE, AT_OFFICE, "   short  ", now=MORNING + timedelta(hours=8))

    rec = AttendanceRecord.query.filter_by(employee_id=employee.id).one()
    assert rec.status == "Present"
    assert rec.punch_out_time is None


def test_punch_out_without_punch_in_is_invalid(session, employee):
    with pytest.raises(InvalidTransition):
        ae.punch_out(employee.id, GOOD_FACE, AT_OFFICE, REPORT, now=MORNING)


def test_daily_report_is_clamped(session, employee):
    ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)
    rec = ae.punch_out(employee.id, GOOD_FACE, AT_OFFICE, "x" * 5000, now=MORNING + timedelta(hours=1))
    assert len(rec.daily_report) == 2000


def test_manual_correct_overwrites_without_verification(session, employee, hr):
    ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)
    ae.start_break(employee.id, now=MORNING + timedelta(hours=1))

    rec = ae.manual_correct(hr, employee.id, "2026-01-12", "Absent", "Left for personal work")
    assert rec.status == "Absent"
    assert rec.breaks == []
    assert rec.punch_in_time is None
    assert rec.is_manual_entry is True
    assert rec.edited_by_user_id == hr.user_id
    assert AttendanceRecord.query.filter_by(employee_id=employee.id).count() == 1


def test_manual_half_day_uses_office_timing(session, employee, hr):
    rec = ae.manual_correct(hr, employee.id, "2026-01-13", "half day", "Forgot to punch")
    assert rec.status == "HalfDay"
    # 09:30 IST + 4.5h
    assert as_utc(rec.punch_in_time) == utc(2026, 1, 13, 4, 0)
    assert as_utc(rec.punch_out_time) == utc(2026, 1, 13, 8, 30)
    assert rec.net_work_hours == 4.5

    rec = ae.manual_correct(hr, employee.id, "2026-01-14", "Present", "Badge reader down",
                            in_time="10:00", out_time="19:00")
    assert rec.net_work_hours == 9.0


def test_manual_correct_validation_and_capability(session, company, employee, hr):
    with pytest.raises(ValidationError):
        ae.manual_correct(hr, employee.id, "2026-01-12", "PunchedOut", "nope")
    with pytest.raises(ValidationError):
        ae.manual_correct(hr, employee.id, "2026-01-12", "Present", "")
    with pytest.raises(ValidationError):
        ae.manual_correct(hr, employee.id, "2026-01-12", "Present", "late", in_time="18:00", out_time="09:00")

    staff = Actor(user_id=99, company_id=company.id, roles=frozenset({"employee"}))
    with pytest.raises(Forbidden):
        ae.manual_correct(staff, employee.id, "2026-01-12", "Present", "self approve")

    other_hr = Actor(user_id=98, company_id=company.id + 1, roles=frozenset({"hr"}))
    with pytest.raises(Forbidden):
        ae.manual_correct(other_hr, employee.id, "2026-01-12", "Present", "wrong tenant")


def test_history_newest_first(session, company, employee, hr):
    for d in ("2026-01-05", "2026-01-07", "2026-01-06"):
        ae.manual_correct(hr, employee.id, d, "Present", "backfill")
    rows = ae.get_history(employee.id)
    assert [r.work_date.isoformat() for r in rows] == ["2026-01-07", "2026-01-06", "2026-01-05"]
    assert len(ae.get_history(employee.id, limit=1)) == 1


def test_reconcile_flags_stale_open_records(session, company, employee, hr):
    other = make_employee(session, company, "E002")
    ae.punch_in(employee.id, GOOD_FACE, AT_OFFICE, now=MORNING)
    ae.punch_in(other.id, GOOD_FACE, AT_OFFICE, now=MORNING + timedelta(days=2))

    flagged = ae.reconcile_open_records(hr, company.id, now=MORNING + timedelta(days=2, hours=1))
    assert [r.employee_id for r in flagged] == [employee.id]

    rec = AttendanceRecord.query.filter_by(employee_id=employee.id).one()
    assert rec.needs_review is True
    assert rec.status == "Present"
    assert ae.REVIEW_REMARK in rec.remarks

    # already flagged rows are not reported twice
    assert ae.reconcile_open_records(hr, company.id, now=MORNING + timedelta(days=2, hours=1)) == []
