"""
Celery tasks for appointment notification delivery
"""
import logging
from meroclinic.extensions import celery
from meroclinic.services import notification_service

logger = logging.getLogger(__name__)


@celery.task(name='tasks.dispatch_appointment_event')
def dispatch_appointment_event(event_id):
    """
    Deliver one appointment event as a notification

    Args:
        event_id: AppointmentEvent ID

    Returns:
        dict: Delivery result
    """
    delivered = notification_service.dispatch_event(event_id)
    if not delivered:
        logger.warning(f"Appointment event {event_id} not delivered; left for retry")
    return {'success': delivered, 'event_id': event_id}


@celery.task(name='tasks.redispatch_pending_events')
def redispatch_pending_events(limit=100):
    """
    Retry appointment events still waiting for delivery (runs on beat schedule)

    Returns:
        dict: Number of events delivered
    """
    delivered = notification_service.redispatch_pending_events(limit=limit)
    if delivered:
        logger.info(f"Redispatched {delivered} appointment event(s)")
    return {'success': True, 'delivered': delivered}
