from datetime import datetime

from hrms_engine.extensions import db


class Company(db.Model):
    """
    A tenant.

    Office timing and timezone drive every calendar computation for the
    company's employees:

      timezone        -> IANA name, local days are computed in this zone
      office_start    -> "HH:MM" default punch-in for HR corrections
      office_end      -> "HH:MM" default punch-out for HR corrections
      working_hours   -> full-day length, half of it is a half day
    """

    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)

    timezone = db.Column(db.String(64), nullable=False, default="Asia/Kolkata")
    office_start = db.Column(db.String(5), nullable=False, default="09:30")
    office_end = db.Column(db.String(5), nullable=False, default="18:30")
    working_hours = db.Column(db.Numeric(4, 2), nullable=False, default=9)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "timezone": self.timezone,
            "office_start": self.office_start,
            "office_end": self.office_end,
            "working_hours": float(self.working_hours or 0),
            "is_active": self.is_active,
        }


class CompanyLocation(db.Model):
    """A circular geofence zone: center point plus radius in meters."""

    __tablename__ = "company_locations"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(120), nullable=False)

    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    radius_m = db.Column(db.Integer, nullable=False, default=3000)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_company_location_name"),
        db.CheckConstraint("radius_m > 0", name="ck_company_location_radius"),
    )

    company = db.relationship(
        "Company",
        backref=db.backref("locations", lazy="dynamic", cascade="all, delete-orphan"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "radius_m": self.radius_m,
        }
