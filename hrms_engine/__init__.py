import os
from datetime import timedelta
from decimal import Decimal

import click
from flask import Flask
from flask_cors import CORS
from flask_jwt_extended import JWTManager

from hrms_engine.extensions import db, migrate, normalize_db_url, engine_options_for
from hrms_engine.common.errors import register_error_handlers
from hrms_engine.models import load_all

jwt = JWTManager()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def create_app(config_object=None):
    app = Flask(__name__)

    # Basic inline config (defaults, env overrides)
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", "dev-jwt-secret")
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(hours=2)
    app.config["JWT_DECODE_LEEWAY"] = 120  # 2 minutes grace for clock skew

    db_url = normalize_db_url(os.getenv("DATABASE_URL", "sqlite:///hrms_engine.db"))
    app.config["SQLALCHEMY_DATABASE_URI"] = db_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options_for(db_url)
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # engine tunables
    app.config["DEFAULT_TIMEZONE"] = os.getenv("DEFAULT_TIMEZONE", "Asia/Kolkata")
    app.config["FACE_MATCH_THRESHOLD"] = _env_float("FACE_MATCH_THRESHOLD", 0.6)
    app.config["FACE_DESCRIPTOR_MIN_LENGTH"] = _env_int("FACE_DESCRIPTOR_MIN_LENGTH", 32)
    app.config["DAILY_REPORT_MIN_LENGTH"] = _env_int("DAILY_REPORT_MIN_LENGTH", 10)
    app.config["DEFAULT_GEOFENCE_RADIUS_M"] = _env_int("DEFAULT_GEOFENCE_RADIUS_M", 3000)
    app.config["PAYROLL_MAX_RANGE_DAYS"] = _env_int("PAYROLL_MAX_RANGE_DAYS", 366)
    app.config["ATTENDANCE_HISTORY_LIMIT"] = _env_int("ATTENDANCE_HISTORY_LIMIT", 31)

    # Try loading external config, but don't crash if missing
    if config_object:
        try:
            app.config.from_object(config_object)
        except ImportError as e:
            app.logger.warning("Could not import config object %r: %s", config_object, e)

    # CORS (dev)
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # Extensions
    db.init_app(app)
    register_error_handlers(app)
    jwt.init_app(app)
    migrate.init_app(app, db)

    # Ensure models are loaded so metadata is complete
    with app.app_context():
        load_all()

    # Blueprints
    from hrms_engine.blueprints.health import bp as health_bp
    from hrms_engine.blueprints.auth import bp as auth_bp
    from hrms_engine.blueprints.attendance import bp as attendance_bp
    from hrms_engine.blueprints.leave import bp as leave_bp
    from hrms_engine.blueprints.holidays import bp as holidays_bp
    from hrms_engine.blueprints.locations import bp as locations_bp
    from hrms_engine.blueprints.payroll import bp as payroll_bp
    from hrms_engine.blueprints.employees import bp as employees_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(attendance_bp)
    app.register_blueprint(leave_bp)
    app.register_blueprint(holidays_bp)
    app.register_blueprint(locations_bp)
    app.register_blueprint(payroll_bp)
    app.register_blueprint(employees_bp)

    # ----------------- CLI COMMANDS -----------------

    @app.cli.command("seed-core")
    @click.option("--password", default="4445", show_default=True, type=str)
    def seed_core(password: str):
        """Seed demo company, one office zone and core users (admin, HR, employee)."""
        from hrms_engine.models.user import User
        from hrms_engine.models.master import Company, CompanyLocation
        from hrms_engine.models.employee import Employee

        c = Company.query.filter_by(code="DEMO").first()
        if not c:
            c = Company(code="DEMO", name="Demo Co", timezone=app.config["DEFAULT_TIMEZONE"])
            db.session.add(c)
            db.session.commit()

        if not c.locations.filter_by(name="Head Office").first():
            db.session.add(CompanyLocation(
                company_id=c.id, name="Head Office",
                latitude=18.5204, longitude=73.8567,
                radius_m=app.config["DEFAULT_GEOFENCE_RADIUS_M"],
            ))
            db.session.commit()

        def ensure_user(email: str, full_name: str, role: str):
            user = User.query.filter_by(email=email).first()
            if user:
                return user, False
            user = User(email=email, full_name=full_name, role=role, company_id=c.id, status="active")
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user, True

        _, admin_created = ensure_user("admin@demo.local", "Demo Admin", "admin")
        _, hr_created = ensure_user("hr@demo.local", "HR Manager", "hr")
        emp_user, emp_created = ensure_user("emp@demo.local", "Demo Employee", "employee")

        if not Employee.query.filter_by(user_id=emp_user.id).first():
            db.session.add(Employee(
                company_id=c.id, user_id=emp_user.id, code="EMP-DEMO",
                email=emp_user.email, first_name="Demo", last_name="Employee",
                basic_salary=Decimal("30000.00"), status="active",
            ))
            db.session.commit()

        click.echo(
            "Seeded/ensured: company DEMO with zone 'Head Office'; "
            f"admin@demo.local ({'created' if admin_created else 'existing'}); "
            f"hr@demo.local ({'created' if hr_created else 'existing'}); "
            f"emp@demo.local ({'created' if emp_created else 'existing'}) / {password}"
        )

    return app
