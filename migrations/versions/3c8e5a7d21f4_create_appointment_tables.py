"""Create profile, appointment, consultation and notification tables

Revision ID: 3c8e5a7d21f4
Revises:
Create Date: 2026-10-12 09:30:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c8e5a7d21f4'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    op.create_table(
        'profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('avatar_url', sa.String(length=500), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_profiles_role', 'profiles', ['role'])
    op.create_index('ix_profiles_email', 'profiles', ['email'], unique=True)

    op.create_table(
        'patient_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_patient_profiles_user_id', 'patient_profiles', ['user_id'], unique=True)

    op.create_table(
        'doctor_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('qualifications', sa.String(length=255), nullable=True),
        sa.Column('contact_phone', sa.String(length=20), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_doctor_profiles_user_id', 'doctor_profiles', ['user_id'], unique=True)

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patient_profiles.id'), nullable=False),
        sa.Column('doctor_id', sa.Integer(), sa.ForeignKey('doctor_profiles.id'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('requested_date', sa.DateTime(), nullable=False),
        sa.Column('proposed_date', sa.DateTime(), nullable=True),
        sa.Column('confirmed_date', sa.DateTime(), nullable=True),
        sa.Column('appointment_type', sa.String(length=10), nullable=False, server_default='offline'),
        sa.Column('location', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('patient_notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('doctor_notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('call_session_id', sa.String(length=64), nullable=True),
        sa.Column('call_status', sa.String(length=20), nullable=True),
        sa.Column('call_started_at', sa.DateTime(), nullable=True),
        sa.Column('call_ended_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_appointments_patient_id', 'appointments', ['patient_id'])
    op.create_index('ix_appointments_doctor_id', 'appointments', ['doctor_id'])
    op.create_index('ix_appointments_status', 'appointments', ['status'])

    op.create_table(
        'consultations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('appointment_id', sa.Integer(), sa.ForeignKey('appointments.id'), nullable=False),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patient_profiles.id'), nullable=False),
        sa.Column('doctor_id', sa.Integer(), sa.ForeignKey('doctor_profiles.id'), nullable=False),
        sa.Column('symptoms', sa.Text(), nullable=False, server_default=''),
        sa.Column('medicines', sa.Text(), nullable=False, server_default=''),
        sa.Column('additional_advice', sa.Text(), nullable=False, server_default=''),
        sa.Column('follow_up', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('follow_up_date', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_consultations_appointment_id', 'consultations', ['appointment_id'])
    op.create_index('ix_consultations_patient_id', 'consultations', ['patient_id'])
    op.create_index('ix_consultations_doctor_id', 'consultations', ['doctor_id'])
    op.create_index('ix_consultations_follow_up_date', 'consultations', ['follow_up_date'])

    op.create_table(
        'appointment_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('appointment_id', sa.Integer(), sa.ForeignKey('appointments.id'), nullable=False),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('recipient_user_id', sa.Integer(), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('effective_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('dispatched_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_appointment_events_appointment_id', 'appointment_events', ['appointment_id'])
    op.create_index('ix_appointment_events_event_type', 'appointment_events', ['event_type'])
    op.create_index('ix_appointment_events_status', 'appointment_events', ['status'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('related_id', sa.Integer(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_type', 'notifications', ['type'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('profiles.id'), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('notifications')
    op.drop_table('appointment_events')
    op.drop_table('consultations')
    op.drop_table('appointments')
    op.drop_table('doctor_profiles')
    op.drop_table('patient_profiles')
    op.drop_table('profiles')
