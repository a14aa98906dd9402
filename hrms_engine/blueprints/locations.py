from flask import Blueprint, request

from hrms_engine.common.auth import CAP_LOCATIONS_MANAGE, current_actor, require_same_company, requires_perms
from hrms_engine.common.http import json_body, ok
from hrms_engine.services import locations

bp = Blueprint("locations", __name__, url_prefix="/api/v1/companies")


@bp.put("/<int:company_id>/locations")
@requires_perms(CAP_LOCATIONS_MANAGE)
def configure(company_id: int):
    body = request.get_json(silent=True)
    # accept either a bare list or {"zones": [...]}
    zones = body if isinstance(body, list) else json_body().get("zones")
    rows = locations.configure_locations(current_actor(), company_id, zones)
    return ok([z.to_dict() for z in rows])


@bp.get("/<int:company_id>/locations")
@requires_perms()
def list_zones(company_id: int):
    require_same_company(current_actor(), company_id)
    rows = locations.list_locations(company_id)
    return ok([z.to_dict() for z in rows])
