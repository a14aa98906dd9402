from flask import Blueprint
from flask_jwt_extended import create_access_token, jwt_required

from hrms_engine.common.auth import current_actor
from hrms_engine.common.http import fail, json_body, ok
from hrms_engine.extensions import db
from hrms_engine.models.user import User

bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def _user_payload(u: User):
    return {
        "id": u.id,
        "email": u.email,
        "full_name": u.full_name,
        "roles": u.role_codes(),
        "company_id": u.company_id,
        "employee_id": u.employee_id,
    }


@bp.post("/login")
def login():
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    u = User.query.filter_by(email=email).first()
    if not u or u.status != "active" or not u.check_password(password):
        return fail("Invalid credentials", status=401, code="INVALID_CREDENTIALS")

    # the claims let each request build its Actor without a DB read
    claims = {
        "roles": u.role_codes(),
        "company_id": u.company_id,
        "employee_id": u.employee_id,
        "email": u.email,
    }
    access = create_access_token(identity=str(u.id), additional_claims=claims)
    return ok({"access": access, "user": _user_payload(u)})


@bp.get("/me")
@jwt_required()
def me():
    actor = current_actor()
    u = db.session.get(User, actor.user_id) if actor else None
    if not u:
        return fail("User not found", status=404, code="NOT_FOUND")
    return ok(_user_payload(u))
