import logging

from flask import Blueprint
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from hrms_engine.common.http import fail, ok
from hrms_engine.extensions import db

log = logging.getLogger(__name__)

bp = Blueprint("health", __name__, url_prefix="/api/v1")


@bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        log.error("health check: database unreachable: %s", e)
        return fail("Database unavailable", status=503, code="DB_UNAVAILABLE")
    return ok({"status": "ok", "db": "ok"})
