"""
Notification Service
Records one event per appointment transition and delivers it as a notification.

Delivery is best-effort: nothing in here may raise into the caller, because
the transition that produced the event has already been committed.
"""
import logging
from datetime import datetime
from typing import Optional

from flask import current_app

from meroclinic.extensions import db
from meroclinic.models import AppointmentEvent, Notification
from meroclinic.models.notification import EVENT_PENDING, EVENT_DISPATCHED, EVENT_FAILED

logger = logging.getLogger(__name__)

APPOINTMENT_REQUEST = 'appointment_request'
APPOINTMENT_PROPOSAL = 'appointment_proposal'
APPOINTMENT_ACCEPTED = 'appointment_accepted'
APPOINTMENT_CONFIRMED = 'appointment_confirmed'
APPOINTMENT_CANCELLED = 'appointment_cancelled'
CONSULTATION_COMPLETED = 'consultation_completed'
FOLLOW_UP_SCHEDULED = 'follow_up_scheduled'

EVENT_TITLES = {
    APPOINTMENT_REQUEST: 'New Appointment Request',
    APPOINTMENT_PROPOSAL: 'Appointment Time Proposed',
    APPOINTMENT_ACCEPTED: 'Appointment Accepted',
    APPOINTMENT_CONFIRMED: 'Appointment Confirmed',
    APPOINTMENT_CANCELLED: 'Appointment Cancelled',
    CONSULTATION_COMPLETED: 'Consultation Completed',
    FOLLOW_UP_SCHEDULED: 'Follow-up Scheduled',
}


def emit_event(
    appointment_id: int,
    event_type: str,
    recipient_user_id: int,
    message: str,
    effective_at: Optional[datetime] = None,
) -> Optional[AppointmentEvent]:
    """
    Record an appointment event and hand it to the dispatcher.

    Returns the event, or None when it could not be recorded.
    """
    try:
        event = AppointmentEvent(
            appointment_id=appointment_id,
            event_type=event_type,
            recipient_user_id=recipient_user_id,
            title=EVENT_TITLES[event_type],
            message=message,
            effective_at=effective_at,
            status=EVENT_PENDING,
            attempts=0,
        )
        db.session.add(event)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.warning(
            "Could not record %s event for appointment %s: %s",
            event_type, appointment_id, e
        )
        return None

    _schedule_dispatch(event.id)
    return event


def _schedule_dispatch(event_id: int) -> None:
    mode = current_app.config.get('NOTIFICATION_DISPATCH', 'celery')
    try:
        if mode == 'inline':
            dispatch_event(event_id)
        else:
            from tasks.notification_tasks import dispatch_appointment_event
            dispatch_appointment_event.delay(event_id)
    except Exception as e:
        # The periodic retry task will pick the event up again
        db.session.rollback()
        logger.warning("Dispatch of appointment event %s deferred: %s", event_id, e)


def dispatch_event(event_id: int) -> bool:
    """
    Deliver one pending event as a Notification row.

    Returns True when the notification was written (or already had been).
    """
    event = db.session.get(AppointmentEvent, event_id)
    if event is None:
        logger.warning("Appointment event %s not found", event_id)
        return False
    if event.status == EVENT_DISPATCHED:
        return True
    if event.status == EVENT_FAILED:
        return False

    try:
        notification = Notification(
            user_id=event.recipient_user_id,
            title=event.title,
            message=event.message,
            type=event.event_type,
            related_id=event.appointment_id,
            is_read=False,
        )
        if event.effective_at is not None:
            notification.created_at = event.effective_at
        db.session.add(notification)

        event.status = EVENT_DISPATCHED
        event.attempts = (event.attempts or 0) + 1
        event.dispatched_at = datetime.utcnow()
        event.last_error = None
        db.session.commit()
        return True
    except Exception as e:
        db.session.rollback()
        _record_failure(event_id, e)
        return False


def _record_failure(event_id: int, error: Exception) -> None:
    try:
        event = db.session.get(AppointmentEvent, event_id)
        if event is None:
            return
        event.attempts = (event.attempts or 0) + 1
        event.last_error = str(error)[:1000]
        max_attempts = current_app.config.get('NOTIFICATION_MAX_ATTEMPTS', 5)
        if event.attempts >= max_attempts:
            event.status = EVENT_FAILED
            logger.error(
                "Giving up on appointment event %s after %s attempts: %s",
                event_id, event.attempts, error
            )
        else:
            logger.warning(
                "Appointment event %s delivery failed (attempt %s): %s",
                event_id, event.attempts, error
            )
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error("Could not record delivery failure for event %s: %s", event_id, e, exc_info=True)


def redispatch_pending_events(limit: int = 100) -> int:
    """Retry events still waiting for delivery, oldest first. Returns how many went out."""
    event_ids = [
        row.id for row in AppointmentEvent.query
        .filter(AppointmentEvent.status == EVENT_PENDING)
        .order_by(AppointmentEvent.created_at.asc(), AppointmentEvent.id.asc())
        .limit(limit)
        .all()
    ]
    delivered = 0
    for event_id in event_ids:
        if dispatch_event(event_id):
            delivered += 1
    return delivered
