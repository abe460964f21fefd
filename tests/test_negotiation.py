from datetime import datetime

import pytest

from conftest import actor_for
from meroclinic.extensions import db
from meroclinic.models import Appointment, AppointmentEvent, Notification, AuditLog
from meroclinic.models.appointment_state import (
    PENDING, PROPOSED, CONFIRMED, COMPLETED, CANCELLED, ONLINE, Confirmed,
)
from meroclinic.models.notification import EVENT_PENDING, EVENT_DISPATCHED
from meroclinic.services import negotiation, notification_service
from meroclinic.services.exceptions import (
    AuthorizationViolation, PreconditionFailed, StaleStateConflict, NotFound,
)
from meroclinic.utils.decorators import Actor

JUNE_1 = datetime(2025, 6, 1, 10, 0)
JUNE_2 = datetime(2025, 6, 2, 14, 0)


def _book(patient, doctor, **kwargs):
    return negotiation.book_appointment(actor_for(patient), doctor.id, JUNE_1, **kwargs)


def test_book_propose_confirm(patient, doctor):
    appointment = _book(patient, doctor, patient_notes='headache')
    assert appointment.status == PENDING
    assert appointment.requested_date == JUNE_1
    assert appointment.patient_notes == 'headache'
    assert appointment.location == ''

    negotiation.propose_time(actor_for(doctor), appointment.id, JUNE_2, location='Clinic A')
    appointment = db.session.get(Appointment, appointment.id)
    assert appointment.status == PROPOSED
    assert appointment.proposed_date == JUNE_2
    assert appointment.location == 'Clinic A'
    assert appointment.display_date == JUNE_2

    negotiation.confirm_proposal(actor_for(patient), appointment.id)
    appointment = db.session.get(Appointment, appointment.id)
    assert appointment.status == CONFIRMED
    assert appointment.confirmed_date == JUNE_2
    assert appointment.requested_date == JUNE_1


def test_doctor_accepts_requested_time(patient, doctor):
    appointment = _book(patient, doctor)

    negotiation.accept_request(actor_for(doctor), appointment.id)

    appointment = db.session.get(Appointment, appointment.id)
    assert appointment.status == CONFIRMED
    assert appointment.confirmed_date == appointment.requested_date == JUNE_1
    assert appointment.proposed_date is None


def test_online_proposal_has_no_location(patient, doctor):
    appointment = _book(patient, doctor, appointment_type=ONLINE)

    negotiation.propose_time(actor_for(doctor), appointment.id, JUNE_2, location='Clinic A')

    assert db.session.get(Appointment, appointment.id).location == ''


def test_incomplete_profile_cannot_book(incomplete_patient, doctor):
    with pytest.raises(PreconditionFailed) as exc:
        _book(incomplete_patient, doctor)

    assert exc.value.message == negotiation.INCOMPLETE_PROFILE_MESSAGE
    assert exc.value.field == 'profile'
    assert Appointment.query.count() == 0
    assert AppointmentEvent.query.count() == 0


def test_unverified_doctor_cannot_be_booked(patient, unverified_doctor):
    with pytest.raises(PreconditionFailed) as exc:
        _book(patient, unverified_doctor)
    assert exc.value.field == 'doctor_id'
    assert Appointment.query.count() == 0


def test_unknown_doctor(patient):
    with pytest.raises(NotFound):
        negotiation.book_appointment(actor_for(patient), 999, JUNE_1)


def test_invalid_appointment_type(patient, doctor):
    with pytest.raises(PreconditionFailed) as exc:
        _book(patient, doctor, appointment_type='home-visit')
    assert exc.value.field == 'appointment_type'


def test_doctor_cannot_book(doctor, other_doctor):
    with pytest.raises(AuthorizationViolation):
        negotiation.book_appointment(actor_for(doctor), other_doctor.id, JUNE_1)


def test_patient_cannot_propose(patient, doctor):
    appointment = _book(patient, doctor)

    with pytest.raises(AuthorizationViolation) as exc:
        negotiation.propose_time(actor_for(patient), appointment.id, JUNE_2)

    assert exc.value.status_code == 403
    assert db.session.get(Appointment, appointment.id).status == PENDING


def test_patient_cannot_accept_own_request(patient, doctor):
    appointment = _book(patient, doctor)
    with pytest.raises(AuthorizationViolation):
        negotiation.accept_request(actor_for(patient), appointment.id)


def test_doctor_cannot_confirm_own_proposal(patient, doctor):
    appointment = _book(patient, doctor)
    negotiation.propose_time(actor_for(doctor), appointment.id, JUNE_2)

    with pytest.raises(AuthorizationViolation):
        negotiation.confirm_proposal(actor_for(doctor), appointment.id)
    assert db.session.get(Appointment, appointment.id).status == PROPOSED


def test_other_doctor_is_not_a_party(patient, doctor, other_doctor):
    appointment = _book(patient, doctor)

    with pytest.raises(AuthorizationViolation):
        negotiation.accept_request(actor_for(other_doctor), appointment.id)
    with pytest.raises(AuthorizationViolation):
        negotiation.cancel_appointment(actor_for(other_doctor), appointment.id)
    assert db.session.get(Appointment, appointment.id).status == PENDING


def test_other_patient_is_not_a_party(patient, other_patient, doctor):
    appointment = _book(patient, doctor)
    with pytest.raises(AuthorizationViolation):
        negotiation.cancel_appointment(actor_for(other_patient), appointment.id)


def test_admin_cannot_transition(patient, doctor):
    appointment = _book(patient, doctor)
    with pytest.raises(AuthorizationViolation):
        negotiation.cancel_appointment(Actor(user_id=doctor.user_id, role='admin'), appointment.id)


def test_accept_after_proposal_is_stale(patient, doctor):
    appointment = _book(patient, doctor)
    negotiation.propose_time(actor_for(doctor), appointment.id, JUNE_2)

    with pytest.raises(StaleStateConflict) as exc:
        negotiation.accept_request(actor_for(doctor), appointment.id)
    assert exc.value.status_code == 409
    assert db.session.get(Appointment, appointment.id).status == PROPOSED


def test_patient_cannot_cancel_completed(confirmed_appointment, patient):
    confirmed_appointment.status = COMPLETED
    db.session.commit()

    with pytest.raises(StaleStateConflict):
        negotiation.cancel_appointment(actor_for(patient), confirmed_appointment.id)

    assert db.session.get(Appointment, confirmed_appointment.id).status == COMPLETED


@pytest.mark.parametrize('canceller', ['patient', 'doctor'])
def test_cancellation_is_terminal(patient, doctor, canceller):
    appointment = _book(patient, doctor)
    actor = actor_for(patient if canceller == 'patient' else doctor)

    negotiation.cancel_appointment(actor, appointment.id)
    assert db.session.get(Appointment, appointment.id).status == CANCELLED

    with pytest.raises(StaleStateConflict):
        negotiation.cancel_appointment(actor, appointment.id)
    with pytest.raises(StaleStateConflict):
        negotiation.accept_request(actor_for(doctor), appointment.id)
    assert db.session.get(Appointment, appointment.id).status == CANCELLED


def test_conditional_update_detects_concurrent_change(patient, doctor):
    appointment = _book(patient, doctor)
    stale = db.session.get(Appointment, appointment.id)

    # Another request confirms first
    Appointment.query.filter_by(id=appointment.id).update({'status': CONFIRMED, 'confirmed_date': JUNE_1})
    db.session.commit()

    with pytest.raises(StaleStateConflict):
        negotiation.apply_transition(stale, Confirmed(confirmed_date=JUNE_2), PENDING)

    appointment = db.session.get(Appointment, appointment.id)
    assert appointment.status == CONFIRMED
    assert appointment.confirmed_date == JUNE_1


def test_unknown_appointment(app):
    with pytest.raises(NotFound):
        negotiation.get_appointment(12345)


def test_each_transition_notifies_the_other_party(patient, doctor):
    appointment = _book(patient, doctor)
    negotiation.propose_time(actor_for(doctor), appointment.id, JUNE_2, location='Clinic A')
    negotiation.confirm_proposal(actor_for(patient), appointment.id)
    negotiation.cancel_appointment(actor_for(patient), appointment.id)

    received = [
        (n.user_id, n.type)
        for n in Notification.query.order_by(Notification.id.asc()).all()
    ]
    assert received == [
        (doctor.user_id, notification_service.APPOINTMENT_REQUEST),
        (patient.user_id, notification_service.APPOINTMENT_PROPOSAL),
        (doctor.user_id, notification_service.APPOINTMENT_CONFIRMED),
        (doctor.user_id, notification_service.APPOINTMENT_CANCELLED),
    ]
    assert all(n.related_id == appointment.id for n in Notification.query.all())
    assert {e.status for e in AppointmentEvent.query.all()} == {EVENT_DISPATCHED}


def test_transition_audit_entries(patient, doctor):
    appointment = _book(patient, doctor)
    negotiation.accept_request(actor_for(doctor), appointment.id)

    actions = [row.action for row in AuditLog.query.filter_by(entity_id=str(appointment.id)).order_by(AuditLog.id)]
    assert actions == ['create', 'accept']


def test_failed_delivery_does_not_undo_transition(patient, doctor, monkeypatch):
    def broken_dispatch(event_id):
        raise RuntimeError('notification store unavailable')

    monkeypatch.setattr(notification_service, 'dispatch_event', broken_dispatch)

    appointment = _book(patient, doctor)
    negotiation.accept_request(actor_for(doctor), appointment.id)

    assert db.session.get(Appointment, appointment.id).status == CONFIRMED
    assert Notification.query.count() == 0
    assert AppointmentEvent.query.filter_by(status=EVENT_PENDING).count() == 2

    monkeypatch.undo()
    assert notification_service.redispatch_pending_events() == 2
    assert Notification.query.count() == 2


def test_unrecorded_event_does_not_undo_transition(patient, doctor, monkeypatch):
    monkeypatch.setattr(notification_service, 'EVENT_TITLES', {})

    appointment = _book(patient, doctor)

    assert db.session.get(Appointment, appointment.id).status == PENDING
    assert AppointmentEvent.query.count() == 0


def test_confirming_a_cancelled_proposal_fails(patient, doctor):
    appointment = _book(patient, doctor)
    negotiation.propose_time(actor_for(doctor), appointment.id, JUNE_2, location='Clinic A')
    negotiation.cancel_appointment(actor_for(doctor), appointment.id)

    with pytest.raises(StaleStateConflict):
        negotiation.confirm_proposal(actor_for(patient), appointment.id)

    appointment = db.session.get(Appointment, appointment.id)
    assert appointment.status == CANCELLED
    assert appointment.confirmed_date is None
