# hrms_engine/services/attendance_engine.py
"""
Per-employee, per-local-day attendance state machine.

    NotStarted -> Present -> (OnBreak <-> Present)* -> PunchedOut

Absent / OnLeave / HalfDay are only ever set by an HR correction.

Punch-in and punch-out are verified (face + geofence, or an approved WFH leave
in place of the geofence) before anything is written. Every verified attempt
leaves a PunchAttemptLog row; a rejected attempt leaves nothing else.

Concurrency:
  - the (employee_id, work_date) unique constraint decides racing punch-ins
  - AttendanceRecord.version guards every later transition
Both losers surface as InvalidTransition.
"""
from __future__ import annotations

import logging
import math
from collections import namedtuple
from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from hrms_engine.common.auth import (
    Actor, CAP_ATTENDANCE_CORRECT, require_capability, require_same_company,
)
from hrms_engine.common.errors import (
    APIError, InvalidTransition, MissingDailyReport, NotFound, OutOfGeofence,
    ValidationError, VerificationFailed,
)
from hrms_engine.extensions import db
from hrms_engine.models.attendance import (
    ABSENT, CORRECTION_STATUSES, HALF_DAY, MODE_OFFICE, MODE_WFH, NOT_STARTED,
    ON_BREAK, ON_LEAVE, OPEN_STATUSES, PRESENT, PUNCHED_OUT,
    AttendanceBreak, AttendanceRecord,
)
from hrms_engine.models.employee import Employee
from hrms_engine.models.face_log import PunchAttemptLog
from hrms_engine.models.leave import WFH
from hrms_engine.models.master import Company
from hrms_engine.services.biometric import BiometricVerifier, Capture, get_enrolled_descriptor
from hrms_engine.services.geofence import GeofenceService
from hrms_engine.services.leave_ledger import approved_leave_on
from hrms_engine.services.tz_calendar import (
    add_minutes_hm, as_utc, instant_from_local, local_date, parse_hm, parse_ymd, utcnow,
)

log = logging.getLogger(__name__)

PunchLocation = namedtuple("PunchLocation", "lat lng")

DAILY_REPORT_MAX = 2000
REMARKS_MAX = 1000
REVIEW_REMARK = "No punch-out recorded before end of day"

PUNCH_IN = "IN"
PUNCH_OUT = "OUT"

_STATUS_ALIASES = {
    "present": PRESENT,
    "absent": ABSENT,
    "halfday": HALF_DAY,
    "half day": HALF_DAY,
    "half-day": HALF_DAY,
    "onleave": ON_LEAVE,
    "on leave": ON_LEAVE,
    "leave": ON_LEAVE,
}


def _cfg(key, default=None):
    return current_app.config.get(key, default)


def _load_employee(employee_id) -> Employee:
    emp = db.session.get(Employee, employee_id) if employee_id is not None else None
    if not emp or emp.status != "active":
        raise NotFound("Employee not found")
    return emp


def _tz_of(company: Optional[Company]) -> str:
    return (company.timezone if company else None) or _cfg("DEFAULT_TIMEZONE")


def _record_for(employee_id: int, day) -> Optional[AttendanceRecord]:
    return AttendanceRecord.query.filter_by(employee_id=employee_id, work_date=day).first()


def _coord(value) -> Optional[float]:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    return v if math.isfinite(v) else None


def _coords(location):
    """(lat, lng) as finite floats; anything unusable becomes None."""
    if location is None:
        return None, None
    if isinstance(location, dict):
        lat, lng = location.get("lat"), location.get("lng")
    else:
        lat, lng = location
    lat, lng = _coord(lat), _coord(lng)
    if lat is None or lng is None:
        return None, None
    return lat, lng


def _normalize_mode(mode) -> str:
    raw = str(mode or MODE_OFFICE).strip().lower()
    if raw == "office":
        return MODE_OFFICE
    if raw in ("wfh", "work from home"):
        return MODE_WFH
    raise ValidationError("mode must be Office or WFH")


def _commit_transition(what: str):
    """Commit a state change; a concurrent writer that got there first wins."""
    try:
        db.session.commit()
    except (IntegrityError, StaleDataError):
        db.session.rollback()
        raise InvalidTransition(f"Attendance changed concurrently, {what} not applied")


# ---------- verification ----------

def _reject(attempt: PunchAttemptLog, err: APIError):
    """Persist the rejected attempt and raise. Attendance rows are never touched."""
    attempt.result = "REJECTED"
    attempt.error_code = err.code
    attempt.error_message = err.message
    db.session.add(attempt)
    db.session.commit()
    log.warning(
        "punch %s rejected employee=%s date=%s code=%s face=%s location=%s",
        attempt.punch_type, attempt.employee_id, attempt.work_date,
        err.code, attempt.face_status, attempt.location_status,
    )
    raise err


def _verify(emp: Employee, day, capture: Optional[Capture], location, punch_type: str, mode: str) -> PunchAttemptLog:
    """Face first, then location. Returns the (unsaved) attempt row on success."""
    lat, lng = _coords(location)
    attempt = PunchAttemptLog(
        employee_id=emp.id,
        work_date=day,
        req_lat=lat,
        req_lng=lng,
        punch_type=punch_type,
        location_status="UNKNOWN",
        face_status="UNKNOWN",
        result="PENDING",
        created_at=datetime.utcnow(),
    )

    capture = capture or Capture(None, False)
    match = BiometricVerifier.verify(
        get_enrolled_descriptor(emp.id),
        capture.descriptor,
        face_detected=bool(capture.face_detected),
        threshold=_cfg("FACE_MATCH_THRESHOLD"),
        min_length=_cfg("FACE_DESCRIPTOR_MIN_LENGTH"),
    )
    attempt.face_status = match.face_status
    attempt.face_distance = match.distance
    if not match.matched:
        _reject(attempt, VerificationFailed(
            "Face verification failed",
            payload={"face_status": match.face_status, "distance": match.distance},
        ))

    if mode == MODE_WFH:
        if approved_leave_on(emp.id, day, WFH) is None:
            attempt.location_status = "WFH_NOT_APPROVED"
            _reject(attempt, OutOfGeofence("Work from home is not approved for this date"))
        attempt.location_status = "WFH"
        return attempt

    zones = emp.company.locations.all() if emp.company else []
    geo = GeofenceService.check_zones(lat, lng, zones)
    attempt.distance_m = geo.distance_m
    attempt.zone_name = geo.zone_name
    if not geo.inside:
        if not zones:
            attempt.location_status = "NO_GEOFENCE"
            msg = "No office location configured"
        elif lat is None or lng is None:
            attempt.location_status = "NO_COORDINATES"
            msg = "Location is required"
        else:
            attempt.location_status = "OUTSIDE_GEOFENCE"
            msg = (
                f"You are {geo.distance_m:.0f}m away from the nearest office location"
                if geo.distance_m is not None else "Outside office location"
            )
        _reject(attempt, OutOfGeofence(msg, payload={"distance_m": geo.distance_m}))

    attempt.location_status = "INSIDE_GEOFENCE"
    return attempt


# ---------- employee transitions ----------

def punch_in(employee_id: int, capture: Capture, location=None, mode=MODE_OFFICE,
             now: datetime = None) -> AttendanceRecord:
    now = as_utc(now) or utcnow()
    emp = _load_employee(employee_id)
    day = local_date(now, _tz_of(emp.company))
    mode = _normalize_mode(mode)

    rec = _record_for(emp.id, day)
    if rec is not None and rec.status != NOT_STARTED:
        raise InvalidTransition(
            f"Already punched in for {day.isoformat()}", payload={"status": rec.status}
        )

    attempt = _verify(emp, day, capture, location, PUNCH_IN, mode)
    lat, lng = _coords(location)

    if rec is None:
        rec = AttendanceRecord(company_id=emp.company_id, employee_id=emp.id, work_date=day)
        db.session.add(rec)
    rec.status = PRESENT
    rec.mode = mode
    rec.punch_in_time = now
    rec.in_lat, rec.in_lng = lat, lng
    rec.in_zone = attempt.zone_name
    rec.in_face_distance = attempt.face_distance
    rec.in_image_ref = capture.image_ref if capture else None

    try:
        db.session.flush()
    except (IntegrityError, StaleDataError):
        # another punch-in for the same local day won the race
        db.session.rollback()
        _reject(attempt, InvalidTransition(f"Already punched in for {day.isoformat()}"))

    attempt.attendance_id = rec.id
    attempt.result = "MARKED"
    db.session.add(attempt)
    _commit_transition("punch-in")

    log.info("punch-in employee=%s date=%s mode=%s zone=%s", emp.id, day, mode, rec.in_zone)
    return rec


def start_break(employee_id: int, now: datetime = None) -> AttendanceRecord:
    now = as_utc(now) or utcnow()
    emp = _load_employee(employee_id)
    day = local_date(now, _tz_of(emp.company))

    rec = _record_for(emp.id, day)
    if rec is None or rec.status != PRESENT:
        raise InvalidTransition(
            "Break can only start while punched in",
            payload={"status": rec.status if rec else NOT_STARTED},
        )

    rec.breaks.append(AttendanceBreak(started_at=now))
    rec.status = ON_BREAK
    _commit_transition("break-start")

    log.info("break started employee=%s date=%s", emp.id, day)
    return rec


def end_break(employee_id: int, now: datetime = None) -> AttendanceRecord:
    now = as_utc(now) or utcnow()
    emp = _load_employee(employee_id)
    day = local_date(now, _tz_of(emp.company))

    rec = _record_for(emp.id, day)
    open_brk = rec.open_break if rec is not None else None
    if rec is None or rec.status != ON_BREAK or open_brk is None:
        raise InvalidTransition(
            "No break in progress",
            payload={"status": rec.status if rec else NOT_STARTED},
        )

    open_brk.ended_at = max(now, as_utc(open_brk.started_at))
    rec.status = PRESENT
    _commit_transition("break-end")

    log.info("break ended employee=%s date=%s", emp.id, day)
    return rec


def punch_out(employee_id: int, capture: Capture, location=None, daily_report: str = None,
              now: datetime = None) -> AttendanceRecord:
    now = as_utc(now) or utcnow()
    emp = _load_employee(employee_id)
    day = local_date(now, _tz_of(emp.company))

    rec = _record_for(emp.id, day)
    if rec is None or rec.status not in OPEN_STATUSES:
        raise InvalidTransition(
            "No active punch-in for today",
            payload={"status": rec.status if rec else NOT_STARTED},
        )

    report = (daily_report or "").strip()
    min_len = int(_cfg("DAILY_REPORT_MIN_LENGTH", 10))
    if len(report) < min_len:
        raise MissingDailyReport(f"Daily report must be at least {min_len} characters")

    attempt = _verify(emp, day, capture, location, PUNCH_OUT, rec.mode)
    lat, lng = _coords(location)

    open_brk = rec.open_break
    if open_brk is not None:
        open_brk.ended_at = max(now, as_utc(open_brk.started_at))

    worked = int((now - as_utc(rec.punch_in_time)).total_seconds()) if rec.punch_in_time else 0
    rec.net_work_seconds = max(0, worked - rec.break_seconds())
    rec.punch_out_time = now
    rec.status = PUNCHED_OUT
    rec.daily_report = report[:DAILY_REPORT_MAX]
    rec.out_lat, rec.out_lng = lat, lng
    rec.out_zone = attempt.zone_name
    rec.out_face_distance = attempt.face_distance
    rec.out_image_ref = capture.image_ref if capture else None

    try:
        db.session.flush()
    except StaleDataError:
        db.session.rollback()
        _reject(attempt, InvalidTransition("Attendance changed concurrently, punch-out not applied"))

    attempt.attendance_id = rec.id
    attempt.result = "MARKED"
    db.session.add(attempt)
    _commit_transition("punch-out")

    log.info("punch-out employee=%s date=%s net_hours=%s", emp.id, day, rec.net_work_hours)
    return rec


# ---------- HR ----------

def _normalize_correction_status(status) -> str:
    raw = str(status or "").strip()
    st = _STATUS_ALIASES.get(raw.lower(), raw)
    if st not in CORRECTION_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(CORRECTION_STATUSES)}")
    return st


def manual_correct(actor: Actor, employee_id: int, work_date, status, remarks: str,
                   in_time: str = None, out_time: str = None) -> AttendanceRecord:
    """
    HR overwrite of one day. Creates the record if missing, clears its breaks,
    and is never subject to face or geofence checks.

    Present / HalfDay take punch times from in_time / out_time ("HH:MM", local)
    or fall back to the company office timing; a half day without an out time
    ends working_hours / 2 after the in time.
    """
    require_capability(actor, CAP_ATTENDANCE_CORRECT)
    emp = _load_employee(employee_id)
    require_same_company(actor, emp.company_id)

    day = parse_ymd(work_date)
    if day is None:
        raise ValidationError("date must be YYYY-MM-DD")
    st = _normalize_correction_status(status)
    remarks = (remarks or "").strip()
    if not remarks:
        raise ValidationError("remarks are required for a manual correction")

    company = emp.company
    tz = _tz_of(company)

    punch_in_at = punch_out_at = None
    if st in (PRESENT, HALF_DAY):
        in_hm = in_time or company.office_start
        if parse_hm(in_hm) is None:
            raise ValidationError("in_time must be HH:MM")
        if out_time:
            out_hm = out_time
        elif st == HALF_DAY:
            out_hm = add_minutes_hm(in_hm, int(float(company.working_hours or 0) * 60 / 2))
        else:
            out_hm = company.office_end
        if parse_hm(out_hm) is None:
            raise ValidationError("out_time must be HH:MM")

        punch_in_at = instant_from_local(day, in_hm, tz)
        punch_out_at = instant_from_local(day, out_hm, tz)
        if punch_out_at < punch_in_at:
            raise ValidationError("out_time must not be before in_time")

    rec = _record_for(emp.id, day)
    if rec is None:
        rec = AttendanceRecord(company_id=emp.company_id, employee_id=emp.id, work_date=day, mode=MODE_OFFICE)
        db.session.add(rec)

    rec.breaks.clear()
    rec.status = st
    rec.punch_in_time = punch_in_at
    rec.punch_out_time = punch_out_at
    rec.net_work_seconds = int((punch_out_at - punch_in_at).total_seconds()) if punch_in_at else 0
    rec.remarks = remarks[:REMARKS_MAX]
    rec.is_manual_entry = True
    rec.edited_by_user_id = actor.user_id
    rec.edited_at = utcnow()
    rec.needs_review = False
    _commit_transition("correction")

    log.info("attendance corrected employee=%s date=%s status=%s by user=%s", emp.id, day, st, actor.user_id)
    return rec


def get_history(employee_id: int, limit: int = None) -> List[AttendanceRecord]:
    """Newest day first."""
    if db.session.get(Employee, employee_id) is None:
        raise NotFound("Employee not found")
    limit = limit or _cfg("ATTENDANCE_HISTORY_LIMIT", 31)
    return (
        AttendanceRecord.query
        .filter(AttendanceRecord.employee_id == employee_id)
        .order_by(AttendanceRecord.work_date.desc())
        .limit(int(limit))
        .all()
    )


def reconcile_open_records(actor: Actor, company_id: int, now: datetime = None) -> List[AttendanceRecord]:
    """
    End-of-day rule: a Present / OnBreak record from a local day before today
    is flagged for HR review. It is left open; HR closes it with a correction.
    """
    require_capability(actor, CAP_ATTENDANCE_CORRECT)
    require_same_company(actor, company_id)

    company = db.session.get(Company, company_id)
    if not company:
        raise NotFound("Company not found")

    now = as_utc(now) or utcnow()
    today = local_date(now, _tz_of(company))

    stale = (
        AttendanceRecord.query
        .filter(AttendanceRecord.company_id == company.id)
        .filter(AttendanceRecord.status.in_(OPEN_STATUSES))
        .filter(AttendanceRecord.work_date < today)
        .filter(AttendanceRecord.needs_review.is_(False))
        .order_by(AttendanceRecord.work_date.asc(), AttendanceRecord.id.asc())
        .all()
    )
    for rec in stale:
        rec.needs_review = True
        rec.remarks = f"{rec.remarks}; {REVIEW_REMARK}" if rec.remarks else REVIEW_REMARK
    if stale:
        _commit_transition("reconcile")
        log.info("reconcile company=%s flagged=%s before=%s", company.id, len(stale), today)
    return stale
