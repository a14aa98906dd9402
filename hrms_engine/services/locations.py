# hrms_engine/services/locations.py
"""Company geofence zones. A company with no zones accepts no office punches."""
import logging
import math
from typing import Iterable, List

from flask import current_app

from hrms_engine.common.auth import Actor, CAP_LOCATIONS_MANAGE, require_capability, require_same_company
from hrms_engine.common.errors import NotFound, ValidationError
from hrms_engine.extensions import db
from hrms_engine.models.master import Company, CompanyLocation

log = logging.getLogger(__name__)


def _num(value, field_name: str, lo: float = None, hi: float = None) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not math.isfinite(v):
        raise ValidationError(f"{field_name} must be a number")
    if (lo is not None and v < lo) or (hi is not None and v > hi):
        raise ValidationError(f"{field_name} must be between {lo} and {hi}")
    return v


def _validate_zone(raw: dict, idx: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"zones[{idx}] must be an object")
    name = str(raw.get("name") or "").strip()
    if not name:
        raise ValidationError(f"zones[{idx}].name is required")

    radius = raw.get("radius_m")
    if radius is None:
        radius = current_app.config.get("DEFAULT_GEOFENCE_RADIUS_M", 3000)
    radius = _num(radius, f"zones[{idx}].radius_m")
    if radius <= 0:
        raise ValidationError(f"zones[{idx}].radius_m must be greater than 0")

    return {
        "name": name[:120],
        "latitude": _num(raw.get("latitude", raw.get("lat")), f"zones[{idx}].latitude", -90, 90),
        "longitude": _num(raw.get("longitude", raw.get("lng")), f"zones[{idx}].longitude", -180, 180),
        "radius_m": int(round(radius)),
    }


def _get_company(company_id) -> Company:
    company = db.session.get(Company, company_id) if company_id is not None else None
    if not company:
        raise NotFound("Company not found")
    return company


def configure_locations(actor: Actor, company_id: int, zones: Iterable[dict]) -> List[CompanyLocation]:
    """Replace the company's whole zone set. Nothing changes if any zone is invalid."""
    require_capability(actor, CAP_LOCATIONS_MANAGE)
    require_same_company(actor, company_id)
    company = _get_company(company_id)

    if zones is None or isinstance(zones, (str, dict)):
        raise ValidationError("zones must be a list")
    cleaned = [_validate_zone(z, i) for i, z in enumerate(zones)]

    names = [z["name"].lower() for z in cleaned]
    if len(names) != len(set(names)):
        raise ValidationError("zone names must be unique")

    CompanyLocation.query.filter_by(company_id=company.id).delete(synchronize_session=False)
    rows = [CompanyLocation(company_id=company.id, **z) for z in cleaned]
    db.session.add_all(rows)
    db.session.commit()

    log.info("locations configured company=%s zones=%s by user=%s", company.id, len(rows), actor.user_id)
    return rows


def list_locations(company_id: int) -> List[CompanyLocation]:
    company = _get_company(company_id)
    return (
        CompanyLocation.query
        .filter_by(company_id=company.id)
        .order_by(CompanyLocation.name.asc())
        .all()
    )
