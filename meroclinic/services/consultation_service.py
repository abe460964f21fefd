"""
Consultation Service
Completes a confirmed appointment: records the consultation, closes the
appointment and, when the doctor asks for one, opens a follow-up request.

The consultation insert and the status change commit together or not at all.
Everything after that (follow-up appointment, notifications) is best-effort
and never undoes the completion.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from meroclinic.extensions import db
from meroclinic.models import Appointment, Consultation
from meroclinic.models.appointment_state import CONFIRMED, COMPLETED, Completed, Pending
from meroclinic.services import notification_service
from meroclinic.services.exceptions import PreconditionFailed, StaleStateConflict
from meroclinic.services.negotiation import get_appointment, authorize, apply_transition
from meroclinic.utils.audit import log_audit
from meroclinic.utils.validators import parse_date_time, clean_text, parse_bool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsultationDetails:
    symptoms: str = ''
    medicines: str = ''
    additional_advice: str = ''
    follow_up: bool = False
    follow_up_date: Optional[datetime] = None


@dataclass
class CompletionResult:
    appointment: Appointment
    consultation: Consultation
    follow_up_appointment: Optional[Appointment] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'appointment': self.appointment.to_dict(),
            'consultation': self.consultation.to_dict(),
            'follow_up_appointment': (
                self.follow_up_appointment.to_dict() if self.follow_up_appointment else None
            ),
            'warnings': list(self.warnings),
        }


def parse_consultation_data(data: Mapping) -> ConsultationDetails:
    """
    Validate the completion form.

    A follow-up needs both follow_up_date (YYYY-MM-DD) and follow_up_time (HH:MM).
    """
    data = data or {}
    if not isinstance(data, Mapping):
        raise PreconditionFailed('Consultation details must be a JSON object')
    follow_up = parse_bool(data.get('follow_up', False))
    follow_up_date = None
    if follow_up:
        if not data.get('follow_up_date') or not data.get('follow_up_time'):
            raise PreconditionFailed(
                'Please select both a follow-up date and time',
                field='follow_up_date' if not data.get('follow_up_date') else 'follow_up_time'
            )
        follow_up_date = parse_date_time(
            data.get('follow_up_date'), data.get('follow_up_time'),
            date_field='follow_up_date', time_field='follow_up_time'
        )

    return ConsultationDetails(
        symptoms=clean_text(data.get('symptoms')),
        medicines=clean_text(data.get('medicines')),
        additional_advice=clean_text(data.get('additional_advice')),
        follow_up=follow_up,
        follow_up_date=follow_up_date,
    )


def complete_appointment(actor, appointment_id: int, consultation_data: Mapping) -> CompletionResult:
    """Doctor completes a confirmed appointment with its consultation outcome."""
    appointment = get_appointment(appointment_id)
    authorize(actor, appointment, (CONFIRMED,), COMPLETED)
    details = parse_consultation_data(consultation_data)

    if Consultation.query.filter_by(appointment_id=appointment.id).first() is not None:
        raise StaleStateConflict('A consultation has already been recorded for this appointment')

    # Consultation and status change: one transaction
    try:
        consultation = Consultation(
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            doctor_id=appointment.doctor_id,
            symptoms=details.symptoms,
            medicines=details.medicines,
            additional_advice=details.additional_advice,
            follow_up=details.follow_up,
            follow_up_date=details.follow_up_date,
        )
        db.session.add(consultation)
        db.session.flush()
        apply_transition(
            appointment, Completed(confirmed_date=appointment.confirmed_date), CONFIRMED, commit=False
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to complete appointment {appointment.id}: {e}", exc_info=True)
        raise

    logger.info(f"Appointment {appointment.id} completed with consultation {consultation.id}")
    log_audit('appointment', 'complete', user_id=actor.user_id, entity_id=appointment.id,
              details={'consultation_id': consultation.id, 'follow_up': details.follow_up})

    result = CompletionResult(appointment=appointment, consultation=consultation)

    if details.follow_up:
        try:
            result.follow_up_appointment = _spawn_follow_up(appointment, details.follow_up_date)
        except Exception as e:
            db.session.rollback()
            logger.warning(
                f"Appointment {appointment.id} completed but follow-up appointment was not created: {e}"
            )
            result.warnings.append('Follow-up appointment could not be created')
        else:
            notification_service.emit_event(
                result.follow_up_appointment.id,
                notification_service.FOLLOW_UP_SCHEDULED,
                appointment.patient.user_id,
                f"Dr. {appointment.doctor.full_name} has scheduled a follow-up on "
                f"{details.follow_up_date:%Y-%m-%d} at {details.follow_up_date:%H:%M}",
                effective_at=details.follow_up_date,
            )

    notification_service.emit_event(
        appointment.id,
        notification_service.CONSULTATION_COMPLETED,
        appointment.patient.user_id,
        f"Dr. {appointment.doctor.full_name} has completed your consultation",
    )
    return result


def _spawn_follow_up(appointment: Appointment, follow_up_date: datetime) -> Appointment:
    """Open a new pending request for the same patient and doctor."""
    follow_up = Appointment(
        patient_id=appointment.patient_id,
        doctor_id=appointment.doctor_id,
        appointment_type=appointment.appointment_type,
        patient_notes='',
        doctor_notes='',
        location='',
        **Pending(requested_date=follow_up_date).fields()
    )
    db.session.add(follow_up)
    db.session.commit()
    logger.info(f"Follow-up appointment {follow_up.id} created from appointment {appointment.id}")
    return follow_up
