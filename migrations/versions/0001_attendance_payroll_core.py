"""attendance & payroll core tables

Revision ID: 0001_attendance_payroll_core
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_attendance_payroll_core'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=50), nullable=False, unique=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='Asia/Kolkata'),
        sa.Column('office_start', sa.String(length=5), nullable=False, server_default='09:30'),
        sa.Column('office_end', sa.String(length=5), nullable=False, server_default='18:30'),
        sa.Column('working_hours', sa.Numeric(4, 2), nullable=False, server_default='9'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='employee'),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, unique=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('first_name', sa.String(length=80), nullable=False),
        sa.Column('last_name', sa.String(length=80), nullable=True),
        sa.Column('designation', sa.String(length=120), nullable=True),
        sa.Column('basic_salary', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('company_id', 'code', name='uq_employee_company_code'),
    )
    op.create_index('ix_emp_company_id', 'employees', ['company_id'])

    op.create_table(
        'company_locations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('radius_m', sa.Integer(), nullable=False, server_default='3000'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('company_id', 'name', name='uq_company_location_name'),
        sa.CheckConstraint('radius_m > 0', name='ck_company_location_radius'),
    )
    op.create_index('ix_company_locations_company_id', 'company_locations', ['company_id'])

    op.create_table(
        'employee_biometric_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('descriptor', sa.JSON(), nullable=False),
        sa.Column('descriptor_version', sa.String(length=50), nullable=False, server_default='v1'),
        sa.Column('image_ref', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'attendance_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='NotStarted'),
        sa.Column('mode', sa.String(length=8), nullable=False, server_default='Office'),
        sa.Column('punch_in_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('punch_out_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('net_work_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('daily_report', sa.Text(), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('in_lat', sa.Float(), nullable=True),
        sa.Column('in_lng', sa.Float(), nullable=True),
        sa.Column('in_zone', sa.String(length=120), nullable=True),
        sa.Column('in_face_distance', sa.Float(), nullable=True),
        sa.Column('in_image_ref', sa.Text(), nullable=True),
        sa.Column('out_lat', sa.Float(), nullable=True),
        sa.Column('out_lng', sa.Float(), nullable=True),
        sa.Column('out_zone', sa.String(length=120), nullable=True),
        sa.Column('out_face_distance', sa.Float(), nullable=True),
        sa.Column('out_image_ref', sa.Text(), nullable=True),
        sa.Column('is_manual_entry', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('edited_by_user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('needs_review', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('employee_id', 'work_date', name='uq_attendance_employee_day'),
        sa.CheckConstraint(
            "status in ('NotStarted','Present','OnBreak','PunchedOut','HalfDay','Absent','OnLeave')",
            name='ck_attendance_status',
        ),
        sa.CheckConstraint("mode in ('Office','WFH')", name='ck_attendance_mode'),
    )
    op.create_index('ix_attendance_records_company_id', 'attendance_records', ['company_id'])
    op.create_index('ix_attendance_records_employee_id', 'attendance_records', ['employee_id'])
    op.create_index('ix_attendance_records_work_date', 'attendance_records', ['work_date'])
    op.create_index('ix_attendance_company_day', 'attendance_records', ['company_id', 'work_date'])

    op.create_table(
        'attendance_breaks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('attendance_id', sa.Integer(), sa.ForeignKey('attendance_records.id', ondelete='CASCADE'), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_attendance_breaks_attendance_id', 'attendance_breaks', ['attendance_id'])

    op.create_table(
        'punch_attempt_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('attendance_id', sa.Integer(), sa.ForeignKey('attendance_records.id', ondelete='SET NULL'), nullable=True),
        sa.Column('work_date', sa.Date(), nullable=True),
        sa.Column('req_lat', sa.Float(), nullable=True),
        sa.Column('req_lng', sa.Float(), nullable=True),
        sa.Column('distance_m', sa.Float(), nullable=True),
        sa.Column('zone_name', sa.String(length=120), nullable=True),
        sa.Column('location_status', sa.String(length=50), nullable=False),
        sa.Column('face_status', sa.String(length=50), nullable=False),
        sa.Column('face_distance', sa.Float(), nullable=True),
        sa.Column('result', sa.String(length=20), nullable=False),
        sa.Column('punch_type', sa.String(length=10), nullable=False),
        sa.Column('error_code', sa.String(length=100), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_punch_attempt_logs_employee_id', 'punch_attempt_logs', ['employee_id'])

    op.create_table(
        'leave_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('leave_type', sa.String(length=10), nullable=False),
        sa.Column('day_type', sa.String(length=10), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('days_count', sa.Numeric(5, 2), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False, server_default='Pending'),
        sa.Column('decided_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('end_date >= start_date', name='ck_leave_date_order'),
    )
    op.create_index('ix_leave_requests_company_id', 'leave_requests', ['company_id'])
    op.create_index('ix_leave_requests_employee_id', 'leave_requests', ['employee_id'])
    op.create_index('ix_leave_employee_status', 'leave_requests', ['employee_id', 'status'])

    op.create_table(
        'leave_approval_actions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('leave_request_id', sa.Integer(), sa.ForeignKey('leave_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.String(length=20), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('acted_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('acted_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_leave_approval_actions_leave_request_id', 'leave_approval_actions', ['leave_request_id'])

    op.create_table(
        'holidays',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('reason', sa.String(length=300), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('company_id', 'date', name='uq_holiday_company_date'),
    )
    op.create_index('ix_holidays_company_id', 'holidays', ['company_id'])
    op.create_index('ix_holidays_year', 'holidays', ['year'])


def downgrade() -> None:
    op.drop_table('holidays')
    op.drop_table('leave_approval_actions')
    op.drop_table('leave_requests')
    op.drop_table('punch_attempt_logs')
    op.drop_table('attendance_breaks')
    op.drop_table('attendance_records')
    op.drop_table('employee_biometric_profiles')
    op.drop_table('company_locations')
    op.drop_table('employees')
    op.drop_table('users')
    op.drop_table('companies')
