"""
Negotiation Service
Appointment state machine: who may move an appointment from which status to
which, and the fields each transition writes.

Every entry point authorizes through can_transition() and writes through
apply_transition(), a conditional single-row update that only succeeds while
the row still has the status the caller read.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from meroclinic.extensions import db
from meroclinic.models import Appointment, PatientProfile, DoctorProfile
from meroclinic.models.appointment_state import (
    PENDING, PROPOSED, CONFIRMED, COMPLETED, CANCELLED,
    ACTIVE_STATUSES, APPOINTMENT_TYPES, OFFLINE,
    Pending, Proposed, Confirmed, Cancelled,
)
from meroclinic.services import notification_service
from meroclinic.services.exceptions import (
    AuthorizationViolation, PreconditionFailed, StaleStateConflict, NotFound,
)
from meroclinic.utils.audit import log_audit

logger = logging.getLogger(__name__)

PATIENT = 'patient'
DOCTOR = 'doctor'

# (current status, requested status) -> roles allowed to make that move.
# None as current status stands for "no appointment yet" (booking).
TRANSITIONS = {
    (None, PENDING): frozenset({PATIENT}),
    (PENDING, PROPOSED): frozenset({DOCTOR}),
    (PENDING, CONFIRMED): frozenset({DOCTOR}),
    (PROPOSED, CONFIRMED): frozenset({PATIENT}),
    (CONFIRMED, COMPLETED): frozenset({DOCTOR}),
}
for _status in ACTIVE_STATUSES:
    TRANSITIONS[(_status, CANCELLED)] = frozenset({PATIENT, DOCTOR})

INCOMPLETE_PROFILE_MESSAGE = (
    'Please complete your profile (phone and address required) before booking an appointment'
)


def can_transition(actor_role: Optional[str], current_status: Optional[str], requested_status: str) -> bool:
    """True when a user with actor_role may move an appointment from current_status to requested_status."""
    return actor_role in TRANSITIONS.get((current_status, requested_status), frozenset())


def get_appointment(appointment_id: int) -> Appointment:
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFound(f'Appointment {appointment_id} not found')
    return appointment


def is_party(actor, appointment: Appointment) -> bool:
    """Whether the actor is the patient or the doctor of record."""
    if actor.role == PATIENT:
        return appointment.patient is not None and appointment.patient.user_id == actor.user_id
    if actor.role == DOCTOR:
        return appointment.doctor is not None and appointment.doctor.user_id == actor.user_id
    return False


def counterparty_user_id(actor, appointment: Appointment) -> int:
    if actor.role == DOCTOR:
        return appointment.patient.user_id
    return appointment.doctor.user_id


def authorize(actor, appointment: Appointment, from_statuses, requested_status: str) -> None:
    """
    Reject the transition unless the actor may make it right now.

    from_statuses are the statuses the calling operation starts from. A role
    that may never make the move gets AuthorizationViolation; a role that
    could, but finds the appointment elsewhere, gets StaleStateConflict.
    """
    if not is_party(actor, appointment):
        raise AuthorizationViolation('You are not a party to this appointment')

    if not any(can_transition(actor.role, status, requested_status) for status in from_statuses):
        raise AuthorizationViolation(
            f'A {actor.role or "user"} cannot move an appointment to {requested_status}'
        )

    if not can_transition(actor.role, appointment.status, requested_status):
        raise StaleStateConflict(
            f'Appointment is {appointment.status} and can no longer be moved to '
            f'{requested_status}. Refresh and try again.'
        )


def apply_transition(appointment: Appointment, new_state, expected_status: str, commit: bool = True) -> Appointment:
    """
    Write new_state onto the row only if it still has expected_status.

    With commit=False the caller owns the transaction; on conflict the session
    is rolled back either way.
    """
    values = dict(new_state.fields())
    values['updated_at'] = datetime.utcnow()
    try:
        updated = (
            Appointment.query
            .filter(Appointment.id == appointment.id, Appointment.status == expected_status)
            .update(values, synchronize_session=False)
        )
        if updated != 1:
            db.session.rollback()
            raise StaleStateConflict(
                'Appointment was changed by someone else. Refresh and try again.'
            )
        if commit:
            db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    if commit:
        db.session.refresh(appointment)
    return appointment


def _format_when(value: datetime) -> str:
    return f"{value:%Y-%m-%d} at {value:%H:%M}"


def book_appointment(actor, doctor_id: int, requested_date: datetime,
                     patient_notes: str = '', appointment_type: str = OFFLINE) -> Appointment:
    """
    Create a pending appointment requested by a patient.
    The patient's profile must have a phone number and an address.
    """
    if not can_transition(actor.role, None, PENDING):
        raise AuthorizationViolation('Only patients can book appointments')

    patient = PatientProfile.query.filter_by(user_id=actor.user_id).first()
    if patient is None:
        raise PreconditionFailed('Patient profile not found', field='profile')
    if not patient.is_complete():
        raise PreconditionFailed(INCOMPLETE_PROFILE_MESSAGE, field='profile')

    if requested_date is None:
        raise PreconditionFailed('Field "date" is required', field='date')

    doctor = db.session.get(DoctorProfile, doctor_id) if doctor_id is not None else None
    if doctor is None:
        raise NotFound(f'Doctor with ID {doctor_id} not found')
    if not doctor.is_verified:
        raise PreconditionFailed('This doctor is not accepting appointments yet', field='doctor_id')

    if appointment_type not in APPOINTMENT_TYPES:
        raise PreconditionFailed(
            f'Invalid appointment type. Valid values: {", ".join(APPOINTMENT_TYPES)}',
            field='appointment_type'
        )

    try:
        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            appointment_type=appointment_type,
            patient_notes=patient_notes or '',
            doctor_notes='',
            location='',
            **Pending(requested_date=requested_date).fields()
        )
        db.session.add(appointment)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to create appointment for patient {patient.id}: {e}", exc_info=True)
        raise

    logger.info(f"Appointment {appointment.id} requested by patient {patient.id} with doctor {doctor.id}")
    log_audit('appointment', 'create', user_id=actor.user_id, entity_id=appointment.id,
              details={'doctor_id': doctor.id, 'requested_date': requested_date.isoformat()})

    notification_service.emit_event(
        appointment.id,
        notification_service.APPOINTMENT_REQUEST,
        doctor.user_id,
        f"{patient.full_name} has requested an appointment on {_format_when(requested_date)}",
    )
    return appointment


def propose_time(actor, appointment_id: int, proposed_date: datetime,
                 location: str = '', doctor_notes: str = '') -> Appointment:
    """Doctor counters a pending request with another time (and place, for offline visits)."""
    appointment = get_appointment(appointment_id)
    authorize(actor, appointment, (PENDING,), PROPOSED)

    if proposed_date is None:
        raise PreconditionFailed('Please select both date and time', field='date')

    # Online visits have no place to negotiate
    if appointment.appointment_type != OFFLINE:
        location = ''

    new_state = Proposed(proposed_date=proposed_date, location=location or '', doctor_notes=doctor_notes or '')
    apply_transition(appointment, new_state, PENDING)

    log_audit('appointment', 'propose', user_id=actor.user_id, entity_id=appointment.id,
              details={'proposed_date': proposed_date.isoformat(), 'location': new_state.location})
    notification_service.emit_event(
        appointment.id,
        notification_service.APPOINTMENT_PROPOSAL,
        appointment.patient.user_id,
        f"Dr. {appointment.doctor.full_name} has proposed {_format_when(proposed_date)} for your appointment",
    )
    return appointment


def accept_request(actor, appointment_id: int) -> Appointment:
    """Doctor accepts the patient's requested time as is."""
    appointment = get_appointment(appointment_id)
    authorize(actor, appointment, (PENDING,), CONFIRMED)

    apply_transition(appointment, Confirmed(confirmed_date=appointment.requested_date), PENDING)

    log_audit('appointment', 'accept', user_id=actor.user_id, entity_id=appointment.id,
              details={'confirmed_date': appointment.confirmed_date.isoformat()})
    notification_service.emit_event(
        appointment.id,
        notification_service.APPOINTMENT_ACCEPTED,
        appointment.patient.user_id,
        f"Dr. {appointment.doctor.full_name} has accepted your appointment on "
        f"{_format_when(appointment.confirmed_date)}",
    )
    return appointment


def confirm_proposal(actor, appointment_id: int) -> Appointment:
    """Patient agrees to the doctor's proposed time."""
    appointment = get_appointment(appointment_id)
    authorize(actor, appointment, (PROPOSED,), CONFIRMED)

    apply_transition(appointment, Confirmed(confirmed_date=appointment.proposed_date), PROPOSED)

    log_audit('appointment', 'confirm', user_id=actor.user_id, entity_id=appointment.id,
              details={'confirmed_date': appointment.confirmed_date.isoformat()})
    notification_service.emit_event(
        appointment.id,
        notification_service.APPOINTMENT_CONFIRMED,
        appointment.doctor.user_id,
        f"{appointment.patient.full_name} has confirmed the appointment",
    )
    return appointment


def cancel_appointment(actor, appointment_id: int) -> Appointment:
    """Either party cancels a non-terminal appointment. There is no way back."""
    appointment = get_appointment(appointment_id)
    authorize(actor, appointment, ACTIVE_STATUSES, CANCELLED)

    previous_status = appointment.status
    apply_transition(appointment, Cancelled(), previous_status)

    log_audit('appointment', 'cancel', user_id=actor.user_id, entity_id=appointment.id,
              details={'previous_status': previous_status})

    canceller = appointment.doctor if actor.role == DOCTOR else appointment.patient
    name = f"Dr. {canceller.full_name}" if actor.role == DOCTOR else canceller.full_name
    notification_service.emit_event(
        appointment.id,
        notification_service.APPOINTMENT_CANCELLED,
        counterparty_user_id(actor, appointment),
        f"{name} has cancelled the appointment",
    )
    return appointment
