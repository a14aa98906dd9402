from flask import Blueprint, request

from hrms_engine.common.auth import CAP_LEAVE_DECIDE, current_actor, requires_employee, requires_perms
from hrms_engine.common.http import json_body, ok
from hrms_engine.services import leave_ledger

bp = Blueprint("leave", __name__, url_prefix="/api/v1/leave")


@bp.post("/requests")
@requires_employee
def apply():
    data = json_body()
    lr = leave_ledger.apply_leave(
        current_actor().employee_id,
        data.get("leave_type"),
        data.get("day_type"),
        data.get("start_date"),
        data.get("end_date"),
        data.get("reason"),
    )
    return ok(lr.to_dict(), status=201)


@bp.get("/requests")
@requires_perms()
def list_requests():
    """HR sees the company's requests; everyone else only their own."""
    actor = current_actor()
    status = (request.args.get("status") or "").strip().capitalize() or None

    if actor.can(CAP_LEAVE_DECIDE):
        rows = leave_ledger.list_leaves(
            employee_id=request.args.get("employee_id", type=int),
            company_id=None if actor.is_admin else actor.company_id,
            status=status,
        )
    elif actor.employee_id:
        rows = leave_ledger.list_leaves(employee_id=actor.employee_id, status=status)
    else:
        rows = []
    return ok([r.to_dict() for r in rows])


@bp.post("/requests/<int:leave_id>/decide")
@requires_perms(CAP_LEAVE_DECIDE)
def decide(leave_id: int):
    data = json_body()
    lr = leave_ledger.decide_leave(
        current_actor(),
        leave_id,
        data.get("status"),
        rejection_reason=data.get("rejection_reason"),
    )
    return ok(lr.to_dict())
