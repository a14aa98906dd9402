# hrms_engine/services/leave_ledger.py
"""
Leave requests (with HR approval) and company holidays.

Written by employees and HR; read by the payroll engine and by WFH punch-in.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError

from hrms_engine.common.auth import (
    Actor, CAP_HOLIDAY_MANAGE, CAP_LEAVE_DECIDE, require_capability, require_same_company,
)
from hrms_engine.common.errors import Conflict, NotFound, ValidationError
from hrms_engine.extensions import db
from hrms_engine.models.attendance import Holiday
from hrms_engine.models.employee import Employee
from hrms_engine.models.leave import (
    APPROVED, DAY_TYPES, FULL_DAY, HALF_DAY, LEAVE_TYPES, PENDING, REJECTED,
    LeaveApprovalAction, LeaveRequest,
)
from hrms_engine.services.tz_calendar import parse_ymd

log = logging.getLogger(__name__)

REASON_MAX = 1200
HOLIDAY_REASON_MAX = 300

_LEAVE_TYPE_ALIASES = {
    "paid": "Paid",
    "paid leave": "Paid",
    "unpaid": "Unpaid",
    "unpaid leave": "Unpaid",
    "lwp": "Unpaid",
    "sick": "Sick",
    "sick leave": "Sick",
    "casual": "Casual",
    "casual leave": "Casual",
    "wfh": "WFH",
    "work from home": "WFH",
}


def _clamp(s, max_len: int) -> str:
    t = "" if s is None else str(s)
    return t[:max_len]


def normalize_leave_type(value) -> str:
    raw = str(value or "").strip()
    if not raw:
        return "Paid"
    return _LEAVE_TYPE_ALIASES.get(raw.lower(), raw)


def normalize_day_type(value) -> str:
    raw = str(value or "").strip().lower().replace("-", " ").replace("_", " ")
    if not raw or raw in ("full", "full day"):
        return FULL_DAY
    if raw in ("half", "half day"):
        return HALF_DAY
    return str(value)


def _get_employee(employee_id) -> Employee:
    emp = db.session.get(Employee, employee_id) if employee_id is not None else None
    if not emp or emp.status != "active":
        raise NotFound("Employee not found")
    return emp


# ---------- leave requests ----------

def apply_leave(employee_id: int, leave_type, day_type, start_date, end_date, reason) -> LeaveRequest:
    emp = _get_employee(employee_id)

    lt = normalize_leave_type(leave_type)
    if lt not in LEAVE_TYPES:
        raise ValidationError(f"leave_type must be one of {', '.join(LEAVE_TYPES)}")

    dt = normalize_day_type(day_type)
    if dt not in DAY_TYPES:
        raise ValidationError(f"day_type must be one of {', '.join(DAY_TYPES)}")

    sd = parse_ymd(start_date)
    ed = parse_ymd(end_date)
    if not (sd and ed):
        raise ValidationError("start_date and end_date must be YYYY-MM-DD")
    if ed < sd:
        raise ValidationError("End date cannot be before start date")
    if dt == HALF_DAY and sd != ed:
        raise ValidationError("Half day leave must be for a single date")

    reason = (reason or "").strip() if isinstance(reason, str) else reason
    if not reason:
        raise ValidationError("reason is required")

    overlapping = (
        LeaveRequest.query
        .filter(LeaveRequest.employee_id == emp.id)
        .filter(LeaveRequest.status.in_((PENDING, APPROVED)))
        .filter(and_(LeaveRequest.start_date <= ed, LeaveRequest.end_date >= sd))
        .first()
    )
    if overlapping:
        raise Conflict(
            f"You already have a {overlapping.status} request for overlapping dates",
            payload={"leave_id": overlapping.id},
        )

    days_count = 0.5 if dt == HALF_DAY else float((ed - sd).days + 1)

    lr = LeaveRequest(
        employee_id=emp.id,
        company_id=emp.company_id,
        leave_type=lt,
        day_type=dt,
        start_date=sd,
        end_date=ed,
        days_count=days_count,
        reason=_clamp(reason, REASON_MAX),
        status=PENDING,
    )
    lr.actions.append(LeaveApprovalAction(action="applied", acted_by_user_id=emp.user_id))
    db.session.add(lr)
    db.session.commit()

    log.info("leave applied id=%s employee=%s type=%s %s..%s", lr.id, emp.id, lt, sd, ed)
    return lr


def decide_leave(actor: Actor, leave_id: int, status, rejection_reason: str = None) -> LeaveRequest:
    """Pending -> Approved | Rejected. Decided requests never transition again."""
    require_capability(actor, CAP_LEAVE_DECIDE)

    lr = db.session.get(LeaveRequest, leave_id)
    if not lr:
        raise NotFound("Leave not found")
    require_same_company(actor, lr.company_id)

    new_status = str(status or "").strip().capitalize()
    if new_status not in (APPROVED, REJECTED):
        raise ValidationError("status must be Approved or Rejected")

    now = datetime.utcnow()
    # compare-and-swap on status so two deciders cannot both win
    changed = (
        LeaveRequest.query
        .filter(LeaveRequest.id == lr.id, LeaveRequest.status == PENDING)
        .update(
            {
                LeaveRequest.status: new_status,
                LeaveRequest.decided_by_user_id: actor.user_id,
                LeaveRequest.decided_at: now,
                LeaveRequest.rejection_reason: _clamp(rejection_reason, 800) if new_status == REJECTED else None,
                LeaveRequest.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    if not changed:
        db.session.rollback()
        current = db.session.get(LeaveRequest, leave_id)
        raise Conflict(f"Cannot decide request in '{current.status}' status")

    db.session.add(LeaveApprovalAction(
        leave_request_id=lr.id,
        action=new_status.lower(),
        comment=rejection_reason if new_status == REJECTED else None,
        acted_by_user_id=actor.user_id,
        acted_at=now,
    ))
    db.session.commit()
    db.session.refresh(lr)

    log.info("leave %s id=%s by user=%s", new_status.lower(), lr.id, actor.user_id)
    return lr


def list_leaves(employee_id: int = None, company_id: int = None, status: str = None) -> List[LeaveRequest]:
    q = LeaveRequest.query
    if employee_id:
        q = q.filter(LeaveRequest.employee_id == employee_id)
    if company_id:
        q = q.filter(LeaveRequest.company_id == company_id)
    if status:
        q = q.filter(LeaveRequest.status == status)
    return q.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc()).all()


def approved_leaves_between(employee_id: int, start: date, end: date) -> List[LeaveRequest]:
    return (
        LeaveRequest.query
        .filter(LeaveRequest.employee_id == employee_id)
        .filter(LeaveRequest.status == APPROVED)
        .filter(and_(LeaveRequest.start_date <= end, LeaveRequest.end_date >= start))
        .order_by(LeaveRequest.start_date.asc(), LeaveRequest.id.asc())
        .all()
    )


def approved_leave_on(employee_id: int, day: date, leave_type: str = None) -> Optional[LeaveRequest]:
    for lr in approved_leaves_between(employee_id, day, day):
        if leave_type is None or lr.leave_type == leave_type:
            return lr
    return None


# ---------- holidays ----------

def mark_holiday(actor: Actor, company_id: int, day, reason: str) -> Holiday:
    require_capability(actor, CAP_HOLIDAY_MANAGE)
    require_same_company(actor, company_id)

    d = parse_ymd(day)
    if not d:
        raise ValidationError("date must be YYYY-MM-DD")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")

    if Holiday.query.filter_by(company_id=company_id, date=d).first():
        raise Conflict("Holiday already exists for this date")

    h = Holiday(
        company_id=company_id,
        date=d,
        reason=_clamp(reason, HOLIDAY_REASON_MAX),
        year=d.year,
        created_by_user_id=actor.user_id,
    )
    db.session.add(h)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Holiday already exists for this date")

    log.info("holiday marked company=%s date=%s", company_id, d)
    return h


def holidays_between(company_id: int, start: date, end: date) -> List[Holiday]:
    return (
        Holiday.query
        .filter(Holiday.company_id == company_id)
        .filter(Holiday.date >= start, Holiday.date <= end)
        .order_by(Holiday.date.asc())
        .all()
    )


def list_holidays(company_id: int, year: int = None) -> List[Holiday]:
    q = Holiday.query.filter(Holiday.company_id == company_id)
    if year:
        q = q.filter(Holiday.year == year)
    return q.order_by(Holiday.date.asc()).all()
