# hrms_engine/common/auth.py
from __future__ import annotations

from dataclasses import dataclass, field
from functools import wraps
from typing import Iterable, Optional, Set, FrozenSet

from flask import g
from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from hrms_engine.common.errors import Forbidden
from hrms_engine.common.http import fail
from hrms_engine.extensions import db


# Capability codes checked at the operation boundary.
CAP_ATTENDANCE_CORRECT = "attendance.correct"
CAP_ATTENDANCE_READ_ANY = "attendance.read"
CAP_LEAVE_DECIDE = "leave.decide"
CAP_HOLIDAY_MANAGE = "holiday.manage"
CAP_LOCATIONS_MANAGE = "locations.manage"
CAP_PAYROLL_READ = "payroll.read"
CAP_BIOMETRIC_ENROLL = "biometric.enroll"

ROLE_CAPABILITIES = {
    "admin": {"*"},
    "hr": {
        "attendance.*",
        "leave.*",
        "holiday.*",
        "locations.*",
        "payroll.*",
        "biometric.*",
    },
    "employee": set(),
}


# ---------- helpers ----------

def _wildcard_match(user_perm: str, required: str) -> bool:
    """
    Match required permission against a granted permission with simple wildcards.
    Examples:
      granted: '*'                 matches anything
      granted: 'attendance.*'      matches required: 'attendance.correct'
      granted: 'leave.decide'      matches only exact
    """
    if user_perm == "*" or user_perm == required:
        return True
    if user_perm.endswith(".*"):
        prefix = user_perm[:-2]
        return required == prefix or required.startswith(prefix + ".")
    return False


def _has_any_perm(user_perms: Set[str], required_perms: Iterable[str]) -> bool:
    required_perms = list(required_perms)
    if not required_perms:
        return True
    if not user_perms:
        return False
    for req in required_perms:
        if any(_wildcard_match(up, req) for up in user_perms):
            return True
    return False


def perms_for_roles(roles: Iterable[str]) -> Set[str]:
    out: Set[str] = set()
    for r in roles or ():
        out |= ROLE_CAPABILITIES.get(r, set())
    return out


@dataclass(frozen=True)
class Actor:
    """The caller of an engine operation, resolved once per request."""
    user_id: Optional[int]
    company_id: Optional[int]
    roles: FrozenSet[str] = field(default_factory=frozenset)
    employee_id: Optional[int] = None

    @property
    def perms(self) -> Set[str]:
        return perms_for_roles(self.roles)

    def can(self, capability: str) -> bool:
        return _has_any_perm(self.perms, [capability])

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles


def require_capability(actor: Optional[Actor], capability: str) -> Actor:
    if actor is None or not actor.can(capability):
        raise Forbidden(f"Permission denied: {capability} required")
    return actor


def require_same_company(actor: Actor, company_id: Optional[int]) -> None:
    """Tenant isolation: only admins may act across companies."""
    if actor.is_admin:
        return
    if actor.company_id is None or company_id is None or int(actor.company_id) != int(company_id):
        raise Forbidden("Access denied for this company")


def _actor_from_db(uid) -> Optional[Actor]:
    from hrms_engine.models.user import User  # late import to avoid circulars
    try:
        user = db.session.get(User, int(uid))
    except (TypeError, ValueError):
        return None
    if not user or user.status != "active":
        return None
    return Actor(
        user_id=user.id,
        company_id=user.company_id,
        roles=frozenset(user.role_codes()),
        employee_id=user.employee_id,
    )


def current_actor() -> Optional[Actor]:
    """
    Resolve the Actor for the current request.

    Fast path: 'roles' / 'company_id' / 'employee_id' claims issued at login.
    Fallback:  live DB read of the user row.
    """
    uid = get_jwt_identity()
    if uid is None:
        return None

    claims = get_jwt() or {}
    # g outlives a single request when an app context is already pushed
    cached = getattr(g, "_hrms_actor", None)
    if cached is not None and cached[0] == claims.get("jti"):
        return cached[1]

    if "roles" in claims and "company_id" in claims:
        actor = Actor(
            user_id=int(uid),
            company_id=claims.get("company_id"),
            roles=frozenset(claims.get("roles") or []),
            employee_id=claims.get("employee_id"),
        )
    else:
        actor = _actor_from_db(uid)

    g._hrms_actor = (claims.get("jti"), actor)
    return actor


# ---------- decorators ----------

def requires_perms(*perm_codes: str):
    """
    Require that the current user holds ANY of the given capability codes.
    The resolved Actor is stored on flask.g and passed on by current_actor().
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            actor = current_actor()
            if actor is None:
                return fail("Unauthorized", status=401)
            if perm_codes and not _has_any_perm(actor.perms, perm_codes):
                return fail("Forbidden", status=403, code="FORBIDDEN")
            return fn(*args, **kwargs)
        return inner
    return outer


def requires_employee(fn):
    """Self-service endpoints: the caller must be linked to an employee."""
    @wraps(fn)
    @jwt_required()
    def inner(*args, **kwargs):
        actor = current_actor()
        if actor is None:
            return fail("Unauthorized", status=401)
        if not actor.employee_id:
            return fail("No employee record linked to this user", status=403)
        return fn(*args, **kwargs)
    return inner
