# hrms_engine/models/attendance.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from hrms_engine.extensions import db
from hrms_engine.services.tz_calendar import as_utc, iso_utc

# ---- attendance states ----
NOT_STARTED = "NotStarted"
PRESENT = "Present"
ON_BREAK = "OnBreak"
PUNCHED_OUT = "PunchedOut"
HALF_DAY = "HalfDay"
ABSENT = "Absent"
ON_LEAVE = "OnLeave"

STATUSES = (NOT_STARTED, PRESENT, ON_BREAK, PUNCHED_OUT, HALF_DAY, ABSENT, ON_LEAVE)
# statuses HR may set directly
CORRECTION_STATUSES = (PRESENT, ABSENT, HALF_DAY, ON_LEAVE)
OPEN_STATUSES = (PRESENT, ON_BREAK)

MODE_OFFICE = "Office"
MODE_WFH = "WFH"
MODES = (MODE_OFFICE, MODE_WFH)


class AttendanceRecord(db.Model):
    """
    One row per employee per company-local calendar day.

    work_date is the local day in the company's timezone, never UTC.
    version is bumped on every UPDATE; a writer holding a stale copy gets
    StaleDataError instead of silently overwriting a concurrent transition.
    """

    __tablename__ = "attendance_records"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    work_date = db.Column(db.Date, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=NOT_STARTED)
    mode = db.Column(db.String(8), nullable=False, default=MODE_OFFICE)

    punch_in_time = db.Column(db.DateTime(timezone=True), nullable=True)
    punch_out_time = db.Column(db.DateTime(timezone=True), nullable=True)
    net_work_seconds = db.Column(db.Integer, nullable=False, default=0)

    daily_report = db.Column(db.Text, nullable=True)
    remarks = db.Column(db.Text, nullable=True)

    # punch evidence
    in_lat = db.Column(db.Float, nullable=True)
    in_lng = db.Column(db.Float, nullable=True)
    in_zone = db.Column(db.String(120), nullable=True)
    in_face_distance = db.Column(db.Float, nullable=True)
    in_image_ref = db.Column(db.Text, nullable=True)
    out_lat = db.Column(db.Float, nullable=True)
    out_lng = db.Column(db.Float, nullable=True)
    out_zone = db.Column(db.String(120), nullable=True)
    out_face_distance = db.Column(db.Float, nullable=True)
    out_image_ref = db.Column(db.Text, nullable=True)

    # HR override / audit
    is_manual_entry = db.Column(db.Boolean, nullable=False, default=False)
    edited_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    edited_at = db.Column(db.DateTime(timezone=True), nullable=True)
    needs_review = db.Column(db.Boolean, nullable=False, default=False)

    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "work_date", name="uq_attendance_employee_day"),
        db.CheckConstraint(
            "status in ('NotStarted','Present','OnBreak','PunchedOut','HalfDay','Absent','OnLeave')",
            name="ck_attendance_status",
        ),
        db.CheckConstraint("mode in ('Office','WFH')", name="ck_attendance_mode"),
        db.Index("ix_attendance_company_day", "company_id", "work_date"),
    )
    __mapper_args__ = {"version_id_col": version}

    employee = db.relationship("Employee")
    breaks = db.relationship(
        "AttendanceBreak",
        back_populates="record",
        order_by="AttendanceBreak.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def open_break(self):
        if self.breaks and self.breaks[-1].ended_at is None:
            return self.breaks[-1]
        return None

    @property
    def net_work_hours(self) -> float:
        return round((self.net_work_seconds or 0) / 3600.0, 2)

    def break_seconds(self) -> int:
        total = 0
        for b in self.breaks:
            if b.ended_at is not None:
                total += max(0, int((as_utc(b.ended_at) - as_utc(b.started_at)).total_seconds()))
        return total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "company_id": self.company_id,
            "date": self.work_date.isoformat(),
            "status": self.status,
            "mode": self.mode,
            "punch_in_time": iso_utc(self.punch_in_time),
            "punch_out_time": iso_utc(self.punch_out_time),
            "breaks": [b.to_dict() for b in self.breaks],
            "break_minutes": round(self.break_seconds() / 60.0, 2),
            "net_work_hours": self.net_work_hours,
            "daily_report": self.daily_report,
            "remarks": self.remarks,
            "in_zone": self.in_zone,
            "out_zone": self.out_zone,
            "is_manual_entry": self.is_manual_entry,
            "edited_by_user_id": self.edited_by_user_id,
            "edited_at": iso_utc(self.edited_at),
            "needs_review": self.needs_review,
        }


class AttendanceBreak(db.Model):
    __tablename__ = "attendance_breaks"

    id = db.Column(db.Integer, primary_key=True)
    attendance_id = db.Column(
        db.Integer, db.ForeignKey("attendance_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)

    record = db.relationship("AttendanceRecord", back_populates="breaks")

    def to_dict(self):
        return {"start": iso_utc(self.started_at), "end": iso_utc(self.ended_at)}


class Holiday(db.Model):
    __tablename__ = "holidays"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    reason = db.Column(db.String(300), nullable=False)
    year = db.Column(db.Integer, nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("company_id", "date", name="uq_holiday_company_date"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "company_id": self.company_id,
            "date": self.date.isoformat(),
            "reason": self.reason,
            "year": self.year,
        }
