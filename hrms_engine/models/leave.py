from datetime import datetime
from hrms_engine.extensions import db

# leave types
PAID = "Paid"
UNPAID = "Unpaid"
SICK = "Sick"
CASUAL = "Casual"
WFH = "WFH"
LEAVE_TYPES = (PAID, UNPAID, SICK, CASUAL, WFH)
PAID_TYPES = (PAID, SICK, CASUAL)

FULL_DAY = "Full Day"
HALF_DAY = "Half Day"
DAY_TYPES = (FULL_DAY, HALF_DAY)

PENDING = "Pending"
APPROVED = "Approved"
REJECTED = "Rejected"
LEAVE_STATUSES = (PENDING, APPROVED, REJECTED)


class LeaveRequest(db.Model):
    __tablename__ = "leave_requests"
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type = db.Column(db.String(10), nullable=False, default=PAID)
    day_type = db.Column(db.String(10), nullable=False, default=FULL_DAY)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    days_count = db.Column(db.Numeric(5, 2), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(10), nullable=False, default=PENDING)  # Pending|Approved|Rejected

    decided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    decided_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_leave_employee_status", "employee_id", "status"),
        db.CheckConstraint("end_date >= start_date", name="ck_leave_date_order"),
    )

    employee = db.relationship("Employee", backref="leave_requests")
    decided_by = db.relationship("User", foreign_keys=[decided_by_user_id])
    actions = db.relationship(
        "LeaveApprovalAction",
        back_populates="leave_request",
        order_by="LeaveApprovalAction.id",
        cascade="all, delete-orphan",
    )

    @property
    def is_half_day(self) -> bool:
        return self.day_type == HALF_DAY

    @property
    def is_paid(self) -> bool:
        return self.leave_type in PAID_TYPES

    def covers(self, day) -> bool:
        return self.start_date <= day <= self.end_date

    def to_dict(self):
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "company_id": self.company_id,
            "leave_type": self.leave_type,
            "day_type": self.day_type,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "days_count": float(self.days_count),
            "reason": self.reason,
            "status": self.status,
            "decided_by_user_id": self.decided_by_user_id,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "rejection_reason": self.rejection_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class LeaveApprovalAction(db.Model):
    __tablename__ = "leave_approval_actions"
    id = db.Column(db.Integer, primary_key=True)
    leave_request_id = db.Column(db.Integer, db.ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    action = db.Column(db.String(20), nullable=False)  # applied|approved|rejected
    comment = db.Column(db.Text)
    acted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    acted_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    leave_request = db.relationship("LeaveRequest", back_populates="actions")
    acted_by = db.relationship("User")
