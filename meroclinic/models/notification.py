"""
Appointment events (outbox) and the notifications they are delivered as.
"""
from datetime import datetime
from meroclinic.extensions import db
from .base import TimestampMixin

EVENT_PENDING = 'pending'
EVENT_DISPATCHED = 'dispatched'
EVENT_FAILED = 'failed'


class AppointmentEvent(db.Model, TimestampMixin):
    """
    One domain event per appointment transition.

    Written after the transition commits and consumed by the notification
    dispatcher. A failed delivery leaves the event pending for the periodic
    retry task until NOTIFICATION_MAX_ATTEMPTS is reached.
    """
    __tablename__ = 'appointment_events'

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=False, index=True)
    event_type = db.Column(db.String(50), nullable=False, index=True)  # appointment_request, appointment_proposal, ...
    recipient_user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    effective_at = db.Column(db.DateTime, nullable=True)  # overrides notification timestamp (follow-ups)

    status = db.Column(db.String(20), nullable=False, default=EVENT_PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    dispatched_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f"<AppointmentEvent {self.id} {self.event_type} -> {self.recipient_user_id} ({self.status})>"


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(50), nullable=False, index=True)
    related_id = db.Column(db.Integer, nullable=True)  # appointment id
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    # Effective timestamp: creation time, or the due date for follow-up reminders
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'title': self.title,
            'message': self.message,
            'type': self.type,
            'related_id': self.related_id,
            'is_read': self.is_read,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
