# hrms_engine/services/payroll_engine.py
"""
Payable days and estimated salary over an inclusive range of company-local days.

Read-only: nothing here writes to the database. Each day is classified once,
in precedence order:

  1. holiday                        -> 1
  2. approved leave (WFH excluded)  -> paid 1 / unpaid 0, half day leave 0.5 / 0
                                       plus 0.5 if that day was also worked
  3. attendance record              -> by status, see _ATTENDANCE_WEIGHTS
  4. nothing                        -> absent, 0

Per-day rate is basic_salary / days in that day's month, so a range crossing
a month boundary uses each month's own rate.

HR may add up to EXTRA_DAYS_MAX extra payable days on top of the classified
ones. They are priced at the rate of the range's last month and never push
payable days past the number of days in the range.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from flask import current_app

from hrms_engine.common.errors import PayrollRangeError
from hrms_engine.extensions import db
from hrms_engine.models.attendance import (
    ABSENT, HALF_DAY, MODE_WFH, NOT_STARTED, ON_BREAK, ON_LEAVE, PRESENT, PUNCHED_OUT,
    AttendanceRecord,
)
from hrms_engine.models.employee import Employee
from hrms_engine.models.leave import WFH
from hrms_engine.services.leave_ledger import approved_leaves_between, holidays_between
from hrms_engine.services.tz_calendar import (
    as_utc, days_in_month, iter_days, local_date, month_range_in_tz, parse_ymd, utcnow,
)

log = logging.getLogger(__name__)

CENT = Decimal("0.01")
ONE = Decimal("1")
HALF = Decimal("0.5")
ZERO = Decimal("0")

EXTRA_DAYS_MAX = 10

# day rules
RULE_HOLIDAY = "holiday"
RULE_PAID_LEAVE = "paid_leave"
RULE_UNPAID_LEAVE = "unpaid_leave"
RULE_HALF_DAY_LEAVE = "half_day_leave"
RULE_PRESENT = "present"
RULE_WFH = "wfh"
RULE_HALF_DAY = "half_day"
RULE_ON_LEAVE = "on_leave"
RULE_ABSENT = "absent"

_ATTENDANCE_WEIGHTS = {
    PUNCHED_OUT: (ONE, RULE_PRESENT),
    PRESENT: (ONE, RULE_PRESENT),
    ON_BREAK: (ONE, RULE_PRESENT),
    ON_LEAVE: (ONE, RULE_ON_LEAVE),
    HALF_DAY: (HALF, RULE_HALF_DAY),
    ABSENT: (ZERO, RULE_ABSENT),
    NOT_STARTED: (ZERO, RULE_ABSENT),
}

# a record in one of these means the employee did work that day
_WORKED_STATUSES = (PUNCHED_OUT, PRESENT, ON_BREAK, HALF_DAY)


@dataclass
class DayEntry:
    date: str
    rule: str
    weight: Decimal
    rate: Decimal
    amount: Decimal
    attendance_status: Optional[str] = None
    leave_id: Optional[int] = None
    note: Optional[str] = None


@dataclass
class PayrollSnapshot:
    employee_id: int
    employee_name: str
    basic_salary: Decimal
    start_date: str
    end_date: str
    timezone: str
    total_days: int = 0
    total_payable_days: Decimal = ZERO
    present_days: int = 0
    wfh_days: int = 0
    half_days: int = 0
    paid_leave_days: Decimal = ZERO
    unpaid_leave_count: Decimal = ZERO
    holiday_count: int = 0
    absent_days: int = 0
    extra_days: Decimal = ZERO
    extra_amount: Decimal = ZERO
    estimated_salary: Decimal = ZERO
    breakdown: List[DayEntry] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready: money as 2dp strings, day counts as floats."""
        out = asdict(self)
        for key in ("total_payable_days", "paid_leave_days", "unpaid_leave_count", "extra_days"):
            out[key] = float(out[key])
        out["extra_amount"] = str(self.extra_amount)
        out["basic_salary"] = str(self.basic_salary.quantize(CENT))
        out["estimated_salary"] = str(self.estimated_salary)
        for e in out["breakdown"]:
            e["weight"] = float(e["weight"])
            e["rate"] = str(e["rate"].quantize(CENT, rounding=ROUND_HALF_UP))
            e["amount"] = str(e["amount"])
        return out


def clamp_extra_days(value) -> int:
    """Whole days in [0, EXTRA_DAYS_MAX]; anything unparseable is 0."""
    try:
        n = int(value)
    except (TypeError, ValueError):
        return 0
    return min(EXTRA_DAYS_MAX, max(0, n))


def _resolve_range(start_date, end_date, tz_name: str, now: datetime):
    month_first, month_last = month_range_in_tz(tz_name, now)

    start = parse_ymd(start_date) if start_date else month_first
    end = parse_ymd(end_date) if end_date else month_last
    if start is None or end is None:
        raise PayrollRangeError("start_date and end_date must be YYYY-MM-DD")
    if end < start:
        raise PayrollRangeError("end_date cannot be before start_date")

    max_days = int(current_app.config.get("PAYROLL_MAX_RANGE_DAYS", 366))
    if (end - start).days + 1 > max_days:
        raise PayrollRangeError(f"Range cannot exceed {max_days} days")
    return start, end


def _leave_for(day: date, leaves):
    for lr in leaves:
        if lr.covers(day):
            return lr
    return None


def _classify(snap: PayrollSnapshot, holiday, leave, rec):
    """Returns (weight, rule, note) and bumps the snapshot counters."""
    if holiday is not None:
        snap.holiday_count += 1
        return ONE, RULE_HOLIDAY, holiday.reason

    if leave is not None:
        worked = rec is not None and rec.status in _WORKED_STATUSES
        if leave.is_half_day:
            leave_part = HALF if leave.is_paid else ZERO
            if leave.is_paid:
                snap.paid_leave_days += HALF
            else:
                snap.unpaid_leave_count += HALF
            weight = min(ONE, leave_part + (HALF if worked else ZERO))
            return weight, RULE_HALF_DAY_LEAVE, leave.leave_type
        if leave.is_paid:
            snap.paid_leave_days += ONE
            return ONE, RULE_PAID_LEAVE, leave.leave_type
        snap.unpaid_leave_count += ONE
        return ZERO, RULE_UNPAID_LEAVE, leave.leave_type

    if rec is not None:
        weight, rule = _ATTENDANCE_WEIGHTS.get(rec.status, (ZERO, RULE_ABSENT))
        if rule == RULE_PRESENT and rec.mode == MODE_WFH and rec.status == PUNCHED_OUT:
            rule = RULE_WFH
        if rule == RULE_PRESENT:
            snap.present_days += 1
        elif rule == RULE_WFH:
            snap.wfh_days += 1
        elif rule == RULE_HALF_DAY:
            snap.half_days += 1
        elif rule == RULE_ON_LEAVE:
            snap.paid_leave_days += ONE
        else:
            snap.absent_days += 1
        return weight, rule, rec.remarks if rec.is_manual_entry else None

    snap.absent_days += 1
    return ZERO, RULE_ABSENT, None


def _summary(snap: PayrollSnapshot) -> str:
    extra = f" + Extra({snap.extra_days})" if snap.extra_days else ""
    return (
        f"Present({snap.present_days}) + WFH({snap.wfh_days}) + PaidLeave({snap.paid_leave_days}) + "
        f"Holidays({snap.holiday_count}) + HalfDays({snap.half_days * HALF}) - "
        f"Absent({snap.absent_days}) - UnpaidLeave({snap.unpaid_leave_count}){extra} = "
        f"{snap.total_payable_days} payable days, estimated {snap.estimated_salary}"
    )


def compute_payroll(employee_id: int, start_date=None, end_date=None, now: datetime = None,
                    extra_days=0) -> PayrollSnapshot:
    """
    Classify every local day in [start_date, end_date] and price it.

    Missing bounds default to the current month in the company timezone.
    extra_days is clamped to [0, EXTRA_DAYS_MAX], then to the unpaid room
    left in the range.
    Raises PayrollRangeError for an unknown employee or a bad range; a failed
    call never returns a partial snapshot.
    """
    emp = db.session.get(Employee, employee_id) if employee_id is not None else None
    if emp is None:
        raise PayrollRangeError("Employee not found", status_code=404)

    company = emp.company
    tz_name = (company.timezone if company else None) or current_app.config.get("DEFAULT_TIMEZONE")
    now = as_utc(now) or utcnow()
    start, end = _resolve_range(start_date, end_date, tz_name, now)

    holidays = {h.date: h for h in holidays_between(emp.company_id, start, end)}
    leaves = [lr for lr in approved_leaves_between(emp.id, start, end) if lr.leave_type != WFH]
    records = {
        r.work_date: r
        for r in AttendanceRecord.query
        .filter(AttendanceRecord.employee_id == emp.id)
        .filter(AttendanceRecord.work_date >= start, AttendanceRecord.work_date <= end)
        .all()
    }

    basic = Decimal(str(emp.basic_salary or 0))
    snap = PayrollSnapshot(
        employee_id=emp.id,
        employee_name=emp.full_name,
        basic_salary=basic,
        start_date=start.isoformat(),
        end_date=end.isoformat(),
        timezone=tz_name,
    )

    total = ZERO
    for day in iter_days(start, end):
        rec = records.get(day)
        leave = _leave_for(day, leaves)
        weight, rule, note = _classify(snap, holidays.get(day), leave, rec)

        rate = basic / Decimal(days_in_month(day.year, day.month))
        raw = rate * weight
        total += raw
        snap.total_days += 1
        snap.total_payable_days += weight
        snap.breakdown.append(DayEntry(
            date=day.isoformat(),
            rule=rule,
            weight=weight,
            rate=rate,
            amount=raw.quantize(CENT, rounding=ROUND_HALF_UP),
            attendance_status=rec.status if rec else None,
            leave_id=leave.id if leave else None,
            note=note,
        ))

    extra = min(Decimal(clamp_extra_days(extra_days)), Decimal(snap.total_days) - snap.total_payable_days)
    if extra > 0:
        end_rate = basic / Decimal(days_in_month(end.year, end.month))
        snap.extra_days = extra
        snap.extra_amount = (end_rate * extra).quantize(CENT, rounding=ROUND_HALF_UP)
        snap.total_payable_days += extra

    snap.estimated_salary = total.quantize(CENT, rounding=ROUND_HALF_UP) + snap.extra_amount
    snap.summary = _summary(snap)

    log.info(
        "payroll employee=%s %s..%s payable=%s extra=%s salary=%s",
        emp.id, snap.start_date, snap.end_date, snap.total_payable_days, snap.extra_days, snap.estimated_salary,
    )
    return snap


def attendance_stats(employee_id: int, now: datetime = None) -> Dict[str, Any]:
    """Self-service counters for the current local month, up to and including today."""
    emp = db.session.get(Employee, employee_id) if employee_id is not None else None
    if emp is None:
        raise PayrollRangeError("Employee not found", status_code=404)

    tz_name = (emp.company.timezone if emp.company else None) or current_app.config.get("DEFAULT_TIMEZONE")
    now = as_utc(now) or utcnow()
    month_first, _ = month_range_in_tz(tz_name, now)
    today = local_date(now, tz_name)

    snap = compute_payroll(emp.id, month_first.isoformat(), today.isoformat(), now=now)
    return {
        "start_date": snap.start_date,
        "end_date": snap.end_date,
        "present": snap.present_days,
        "wfh": snap.wfh_days,
        "leaves": float(snap.paid_leave_days),
        "unpaid_leaves": float(snap.unpaid_leave_count),
        "half_days": snap.half_days,
        "holidays": snap.holiday_count,
        "absent": snap.absent_days,
        "payable_days": float(snap.total_payable_days),
    }
