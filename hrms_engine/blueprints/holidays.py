from flask import Blueprint, request

from hrms_engine.common.auth import CAP_HOLIDAY_MANAGE, current_actor, require_same_company, requires_perms
from hrms_engine.common.errors import ValidationError
from hrms_engine.common.http import json_body, ok
from hrms_engine.services import leave_ledger

bp = Blueprint("holidays", __name__, url_prefix="/api/v1/holidays")


def _company_id(actor, raw):
    company_id = raw or actor.company_id
    if not company_id:
        raise ValidationError("company_id is required")
    return int(company_id)


@bp.post("")
@requires_perms(CAP_HOLIDAY_MANAGE)
def create():
    actor = current_actor()
    data = json_body()
    h = leave_ledger.mark_holiday(
        actor,
        _company_id(actor, data.get("company_id")),
        data.get("date"),
        data.get("reason"),
    )
    return ok(h.to_dict(), status=201)


@bp.get("")
@requires_perms()
def list_holidays():
    actor = current_actor()
    company_id = _company_id(actor, request.args.get("company_id", type=int))
    require_same_company(actor, company_id)
    rows = leave_ledger.list_holidays(company_id, year=request.args.get("year", type=int))
    return ok([h.to_dict() for h in rows])
