from datetime import datetime
from hrms_engine.extensions import db


class EmployeeBiometricProfile(db.Model):
    """
    Enrolled face descriptor, one per employee.

    Created at registration and only ever replaced as a whole by a
    re-enrollment flow; never partially updated.
    """
    __tablename__ = "employee_biometric_profiles"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, unique=True)
    descriptor = db.Column(db.JSON, nullable=False)  # Array of floats
    descriptor_version = db.Column(db.String(50), default="v1", nullable=False)
    image_ref = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    employee = db.relationship("Employee", backref=db.backref("biometric_profile", uselist=False))
