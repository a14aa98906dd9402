# hrms_engine/blueprints/attendance.py
from flask import Blueprint, request

from hrms_engine.common.auth import (
    CAP_ATTENDANCE_CORRECT, CAP_ATTENDANCE_READ_ANY, current_actor, require_same_company,
    requires_employee, requires_perms,
)
from hrms_engine.common.errors import Forbidden, NotFound
from hrms_engine.common.http import json_body, ok
from hrms_engine.extensions import db
from hrms_engine.models.employee import Employee
from hrms_engine.services import attendance_engine, payroll_engine
from hrms_engine.services.attendance_engine import PunchLocation
from hrms_engine.services.biometric import Capture

bp = Blueprint("attendance", __name__, url_prefix="/api/v1/attendance")


def _bool(v, default=False):
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in ("1", "true", "yes", "y")


def _capture(data: dict) -> Capture:
    return Capture(
        descriptor=data.get("descriptor"),
        face_detected=_bool(data.get("face_detected")),
        image_ref=data.get("image_ref"),
    )


def _location(data: dict) -> PunchLocation:
    return PunchLocation(data.get("lat"), data.get("lng"))


# ---------- self service ----------

@bp.post("/punch-in")
@requires_employee
def punch_in():
    data = json_body()
    rec = attendance_engine.punch_in(
        current_actor().employee_id,
        _capture(data),
        _location(data),
        mode=data.get("mode") or "Office",
    )
    return ok(rec.to_dict(), status=201)


@bp.post("/punch-out")
@requires_employee
def punch_out():
    data = json_body()
    rec = attendance_engine.punch_out(
        current_actor().employee_id,
        _capture(data),
        _location(data),
        data.get("daily_report"),
    )
    return ok(rec.to_dict())


@bp.post("/break-start")
@requires_employee
def break_start():
    rec = attendance_engine.start_break(current_actor().employee_id)
    return ok(rec.to_dict())


@bp.post("/break-end")
@requires_employee
def break_end():
    rec = attendance_engine.end_break(current_actor().employee_id)
    return ok(rec.to_dict())


@bp.get("/history")
@requires_employee
def my_history():
    limit = request.args.get("limit", type=int)
    rows = attendance_engine.get_history(current_actor().employee_id, limit=limit)
    return ok([r.to_dict() for r in rows])


@bp.get("/stats")
@requires_employee
def my_stats():
    return ok(payroll_engine.attendance_stats(current_actor().employee_id))


@bp.get("/history/<int:employee_id>")
@requires_perms()
def employee_history(employee_id: int):
    actor = current_actor()
    if actor.employee_id != employee_id:
        if not actor.can(CAP_ATTENDANCE_READ_ANY):
            raise Forbidden("Permission denied: attendance.read required")
        emp = db.session.get(Employee, employee_id)
        if not emp:
            raise NotFound("Employee not found")
        require_same_company(actor, emp.company_id)

    limit = request.args.get("limit", type=int)
    rows = attendance_engine.get_history(employee_id, limit=limit)
    return ok([r.to_dict() for r in rows])


# ---------- HR ----------

@bp.post("/manual")
@requires_perms(CAP_ATTENDANCE_CORRECT)
def manual():
    data = json_body()
    rec = attendance_engine.manual_correct(
        current_actor(),
        data.get("employee_id"),
        data.get("date"),
        data.get("status"),
        data.get("remarks"),
        in_time=data.get("in_time"),
        out_time=data.get("out_time"),
    )
    return ok(rec.to_dict())


@bp.post("/reconcile")
@requires_perms(CAP_ATTENDANCE_CORRECT)
def reconcile():
    actor = current_actor()
    data = json_body()
    company_id = data.get("company_id") or actor.company_id
    rows = attendance_engine.reconcile_open_records(actor, company_id)
    return ok([r.to_dict() for r in rows], flagged=len(rows))
