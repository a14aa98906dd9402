from flask import Blueprint, current_app

from hrms_engine.common.auth import CAP_BIOMETRIC_ENROLL, current_actor, require_same_company, requires_perms
from hrms_engine.common.errors import Forbidden, NotFound
from hrms_engine.common.http import json_body, ok
from hrms_engine.extensions import db
from hrms_engine.models.employee import Employee
from hrms_engine.services.biometric import register_profile

bp = Blueprint("employees", __name__, url_prefix="/api/v1/employees")


@bp.post("/<int:employee_id>/biometric-profile")
@requires_perms()
def enroll(employee_id: int):
    """HR enrolls anyone in the company; an employee may enroll themselves once."""
    actor = current_actor()
    emp = db.session.get(Employee, employee_id)
    if not emp:
        raise NotFound("Employee not found")
    if actor.employee_id != employee_id:
        if not actor.can(CAP_BIOMETRIC_ENROLL):
            raise Forbidden("Permission denied: biometric.enroll required")
        require_same_company(actor, emp.company_id)

    data = json_body()
    profile = register_profile(
        employee_id,
        data.get("descriptor"),
        image_ref=data.get("image_ref"),
        min_length=current_app.config.get("FACE_DESCRIPTOR_MIN_LENGTH"),
    )
    return ok({
        "employee_id": profile.employee_id,
        "descriptor_length": len(profile.descriptor),
        "descriptor_version": profile.descriptor_version,
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
    }, status=201)
