from datetime import datetime
from hrms_engine.extensions import db


class PunchAttemptLog(db.Model):
    """Audit trail of every verified punch attempt, accepted or rejected."""
    __tablename__ = "punch_attempt_logs"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    attendance_id = db.Column(db.Integer, db.ForeignKey("attendance_records.id", ondelete="SET NULL"), nullable=True)
    work_date = db.Column(db.Date, nullable=True)

    req_lat = db.Column(db.Float, nullable=True)
    req_lng = db.Column(db.Float, nullable=True)
    distance_m = db.Column(db.Float, nullable=True)
    zone_name = db.Column(db.String(120), nullable=True)

    location_status = db.Column(db.String(50), nullable=False)  # INSIDE_GEOFENCE, OUTSIDE_GEOFENCE, NO_GEOFENCE, WFH, SKIPPED
    face_status = db.Column(db.String(50), nullable=False)      # MATCH, MISMATCH, NO_FACE, NO_PROFILE, BAD_DESCRIPTOR
    face_distance = db.Column(db.Float, nullable=True)

    result = db.Column(db.String(20), nullable=False)     # MARKED, REJECTED
    punch_type = db.Column(db.String(10), nullable=False) # IN, OUT

    error_code = db.Column(db.String(100), nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    employee = db.relationship("Employee")

    def to_dict(self):
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "attendance_id": self.attendance_id,
            "date": self.work_date.isoformat() if self.work_date else None,
            "punch_type": self.punch_type,
            "result": self.result,
            "face_status": self.face_status,
            "face_distance": self.face_distance,
            "location_status": self.location_status,
            "distance_m": self.distance_m,
            "zone_name": self.zone_name,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "at": self.created_at.isoformat() if self.created_at else None,
        }
