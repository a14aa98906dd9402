from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List

from hrms_engine.common.auth import Actor, CAP_PAYROLL_READ, require_capability, require_same_company
from hrms_engine.common.errors import PayrollRangeError
from hrms_engine.extensions import db
from hrms_engine.models.employee import Employee
from hrms_engine.services.payroll_engine import CENT, ZERO, PayrollSnapshot, compute_payroll


@dataclass
class PayslipComponent:
    code: str
    name: str
    amount: Decimal


@dataclass
class PayslipDTO:
    company: Dict[str, Any]
    employee: Dict[str, Any]
    period: Dict[str, Any]
    attendance: Dict[str, Any]
    earnings: List[PayslipComponent]
    deductions: List[PayslipComponent]
    totals: Dict[str, Any]
    summary: str


def _money(v) -> str:
    return str(Decimal(v).quantize(CENT, rounding=ROUND_HALF_UP))


def _jsonable(obj):
    if isinstance(obj, Decimal):
        return _money(obj)
    if isinstance(obj, dict):
        return {k: _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_jsonable(v) for v in obj]
    return obj


class PayslipService:
    def build_payslip_dto(self, emp: Employee, snap: PayrollSnapshot) -> dict:
        """
        Salary slip for one employee over the snapshot's range.

        BASIC is the full basic pay for the period (sum of per-day rates),
        LOP takes off the unpaid days, EXTRA is the HR adjustment. Net pay is
        always the snapshot's estimated_salary.
        """
        company = emp.company

        period_basic = sum((e.rate for e in snap.breakdown), ZERO).quantize(CENT, rounding=ROUND_HALF_UP)
        earnings = [PayslipComponent(code="BASIC", name="Basic Salary", amount=period_basic)]
        if snap.extra_amount > 0:
            earnings.append(PayslipComponent(code="EXTRA", name="Extra Days", amount=snap.extra_amount))
        gross = sum((c.amount for c in earnings), ZERO)

        net = snap.estimated_salary
        lop = gross - net
        deductions = []
        if lop > 0:
            deductions.append(PayslipComponent(code="LOP", name="Loss of Pay", amount=lop))

        worked_payable = snap.total_payable_days - snap.extra_days
        dto = PayslipDTO(
            company={
                "id": company.id if company else None,
                "code": company.code if company else None,
                "name": company.name if company else None,
            },
            employee={
                "id": emp.id,
                "code": emp.code,
                "name": emp.full_name,
                "email": emp.email,
                "designation": emp.designation,
                "basic_salary_monthly": snap.basic_salary,
            },
            period={
                "start_date": snap.start_date,
                "end_date": snap.end_date,
                "timezone": snap.timezone,
            },
            attendance={
                "days_in_period": snap.total_days,
                "present_days": snap.present_days,
                "wfh_days": snap.wfh_days,
                "paid_leave_days": float(snap.paid_leave_days),
                "holidays": snap.holiday_count,
                "half_days": snap.half_days,
                "unpaid_leave_days": float(snap.unpaid_leave_count),
                "absent_days": snap.absent_days,
                "lop_days": float(Decimal(snap.total_days) - worked_payable),
                "extra_days": float(snap.extra_days),
                "payable_days": float(snap.total_payable_days),
            },
            earnings=earnings,
            deductions=deductions,
            totals={
                "gross_pay": gross,
                "total_deductions": sum((c.amount for c in deductions), ZERO),
                "net_pay": net,
            },
            summary=snap.summary,
        )
        return _jsonable(asdict(dto))


def build_payslip(actor: Actor, employee_id: int, start_date=None, end_date=None,
                  extra_days=0, now=None) -> dict:
    require_capability(actor, CAP_PAYROLL_READ)
    emp = db.session.get(Employee, employee_id) if employee_id is not None else None
    if emp is None:
        raise PayrollRangeError("Employee not found", status_code=404)
    require_same_company(actor, emp.company_id)

    snap = compute_payroll(emp.id, start_date, end_date, now=now, extra_days=extra_days)
    return PayslipService().build_payslip_dto(emp, snap)
