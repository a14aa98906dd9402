from flask import Blueprint, request

from hrms_engine.common.auth import CAP_PAYROLL_READ, current_actor, require_same_company, requires_perms
from hrms_engine.common.errors import PayrollRangeError
from hrms_engine.common.http import ok
from hrms_engine.extensions import db
from hrms_engine.models.employee import Employee
from hrms_engine.services.payroll_engine import compute_payroll
from hrms_engine.services.payslip_service import build_payslip

bp = Blueprint("payroll", __name__, url_prefix="/api/v1/payroll")


@bp.get("/<int:employee_id>")
@requires_perms(CAP_PAYROLL_READ)
def payroll_stats(employee_id: int):
    emp = db.session.get(Employee, employee_id)
    if not emp:
        raise PayrollRangeError("Employee not found", status_code=404)
    require_same_company(current_actor(), emp.company_id)

    snap = compute_payroll(
        employee_id,
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        extra_days=request.args.get("extra_days"),
    )
    return ok(snap.to_dict())


@bp.get("/<int:employee_id>/payslip")
@requires_perms(CAP_PAYROLL_READ)
def payslip(employee_id: int):
    dto = build_payslip(
        current_actor(),
        employee_id,
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        extra_days=request.args.get("extra_days"),
    )
    return ok(dto)
