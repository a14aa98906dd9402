import os
from datetime import datetime
from decimal import Decimal

import pytest
import pytz

from hrms_engine import create_app
from hrms_engine.common.auth import Actor
from hrms_engine.extensions import db
from hrms_engine.models.employee import Employee
from hrms_engine.models.face_profile import EmployeeBiometricProfile
from hrms_engine.models.master import Company, CompanyLocation
from hrms_engine.models.user import User

OFFICE_LAT, OFFICE_LNG = 18.5204, 73.8567
DESCRIPTOR = [0.1] * 128


def utc(*args):
    return datetime(*args, tzinfo=pytz.utc)


@pytest.fixture(scope="function")
def app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    app.config["TESTING"] = True
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def session(app):
    with app.app_context():
        yield db.session


@pytest.fixture
def company(session):
    c = Company(code="ACME", name="Acme Pvt Ltd", timezone="Asia/Kolkata")
    session.add(c); session.commit()
    session.add(CompanyLocation(company_id=c.id, name="HQ", latitude=OFFICE_LAT, longitude=OFFICE_LNG, radius_m=200))
    session.commit()
    return c


def make_user(session, company, email, role, password="secret"):
    u = User(email=email, full_name=email.split("@")[0], role=role, company_id=company.id, status="active")
    u.set_password(password)
    session.add(u); session.commit()
    return u


def make_employee(session, company, code="E001", salary="30000", user=None, enroll=True):
    e = Employee(
        company_id=company.id,
        user_id=user.id if user else None,
        code=code,
        email=f"{code.lower()}@acme.test",
        first_name="Test",
        last_name=code,
        basic_salary=Decimal(salary),
        status="active",
    )
    session.add(e); session.commit()
    if enroll:
        session.add(EmployeeBiometricProfile(employee_id=e.id, descriptor=list(DESCRIPTOR)))
        session.commit()
    return e


@pytest.fixture
def hr_user(session, company):
    return make_user(session, company, "hr@acme.test", "hr")


@pytest.fixture
def hr(hr_user, company):
    return Actor(user_id=hr_user.id, company_id=company.id, roles=frozenset({"hr"}))


@pytest.fixture
def employee(session, company):
    user = make_user(session, company, "e001@acme.test", "employee")
    return make_employee(session, company, "E001", user=user)
