from datetime import datetime

import pytest

from conftest import actor_for
from meroclinic.extensions import db
from meroclinic.models import Appointment, Consultation, Notification
from meroclinic.models.appointment_state import PENDING, CONFIRMED, COMPLETED
from meroclinic.services import consultation_service, notification_service
from meroclinic.services.consultation_service import complete_appointment, parse_consultation_data
from meroclinic.services.exceptions import (
    AuthorizationViolation, PreconditionFailed, StaleStateConflict,
)

FOLLOW_UP = {
    'symptoms': 'fever',
    'medicines': 'Paracetamol 500mg',
    'additional_advice': 'Rest and fluids',
    'follow_up': True,
    'follow_up_date': '2025-06-10',
    'follow_up_time': '09:00',
}


def test_completion_with_follow_up(confirmed_appointment, doctor, patient):
    result = complete_appointment(actor_for(doctor), confirmed_appointment.id, FOLLOW_UP)

    assert result.warnings == []
    assert result.appointment.status == COMPLETED
    assert result.appointment.confirmed_date == datetime(2025, 6, 1, 10, 0)

    consultation = Consultation.query.filter_by(appointment_id=confirmed_appointment.id).one()
    assert consultation.symptoms == 'fever'
    assert consultation.follow_up is True
    assert consultation.follow_up_date == datetime(2025, 6, 10, 9, 0)
    assert consultation.patient_id == patient.id
    assert consultation.doctor_id == doctor.id

    follow_up = result.follow_up_appointment
    assert follow_up is not None
    assert follow_up.id != confirmed_appointment.id
    assert follow_up.status == PENDING
    assert follow_up.requested_date == datetime(2025, 6, 10, 9, 0)
    assert (follow_up.patient_id, follow_up.doctor_id) == (patient.id, doctor.id)
    assert follow_up.appointment_type == confirmed_appointment.appointment_type
    assert Appointment.query.count() == 2


def test_completion_without_follow_up(confirmed_appointment, doctor):
    result = complete_appointment(actor_for(doctor), confirmed_appointment.id, {'symptoms': 'cough'})

    assert result.follow_up_appointment is None
    assert db.session.get(Appointment, confirmed_appointment.id).status == COMPLETED
    assert Appointment.query.count() == 1
    assert Consultation.query.one().follow_up_date is None


def test_follow_up_without_time_writes_nothing(confirmed_appointment, doctor):
    data = dict(FOLLOW_UP)
    del data['follow_up_time']

    with pytest.raises(PreconditionFailed) as exc:
        complete_appointment(actor_for(doctor), confirmed_appointment.id, data)

    assert exc.value.field == 'follow_up_time'
    assert Consultation.query.count() == 0
    assert db.session.get(Appointment, confirmed_appointment.id).status == CONFIRMED


def test_bad_follow_up_date_format():
    data = dict(FOLLOW_UP, follow_up_date='10/06/2025')
    with pytest.raises(PreconditionFailed) as exc:
        parse_consultation_data(data)
    assert exc.value.field == 'follow_up_date'


def test_follow_up_flag_from_form_string():
    details = parse_consultation_data(dict(FOLLOW_UP, follow_up='true'))
    assert details.follow_up is True
    assert parse_consultation_data({'follow_up': 'false'}).follow_up is False


def test_completing_twice(confirmed_appointment, doctor):
    complete_appointment(actor_for(doctor), confirmed_appointment.id, {'symptoms': 'fever'})

    with pytest.raises(StaleStateConflict):
        complete_appointment(actor_for(doctor), confirmed_appointment.id, {'symptoms': 'fever'})

    assert Consultation.query.count() == 1


def test_patient_cannot_complete(confirmed_appointment, patient):
    with pytest.raises(AuthorizationViolation):
        complete_appointment(actor_for(patient), confirmed_appointment.id, FOLLOW_UP)
    assert Consultation.query.count() == 0


def test_other_doctor_cannot_complete(confirmed_appointment, other_doctor):
    with pytest.raises(AuthorizationViolation):
        complete_appointment(actor_for(other_doctor), confirmed_appointment.id, FOLLOW_UP)


def test_pending_appointment_cannot_be_completed(confirmed_appointment, doctor):
    confirmed_appointment.status = PENDING
    confirmed_appointment.confirmed_date = None
    db.session.commit()

    with pytest.raises(StaleStateConflict):
        complete_appointment(actor_for(doctor), confirmed_appointment.id, {'symptoms': 'fever'})
    assert Consultation.query.count() == 0


def test_follow_up_failure_keeps_completion(confirmed_appointment, doctor, monkeypatch):
    def broken_spawn(appointment, follow_up_date):
        raise RuntimeError('database went away')

    monkeypatch.setattr(consultation_service, '_spawn_follow_up', broken_spawn)

    result = complete_appointment(actor_for(doctor), confirmed_appointment.id, FOLLOW_UP)

    assert result.follow_up_appointment is None
    assert result.warnings == ['Follow-up appointment could not be created']
    assert db.session.get(Appointment, confirmed_appointment.id).status == COMPLETED
    assert Consultation.query.count() == 1
    assert Appointment.query.count() == 1


def test_completion_notifications(confirmed_appointment, doctor, patient):
    result = complete_appointment(actor_for(doctor), confirmed_appointment.id, FOLLOW_UP)

    follow_up_notice = Notification.query.filter_by(type=notification_service.FOLLOW_UP_SCHEDULED).one()
    assert follow_up_notice.user_id == patient.user_id
    assert follow_up_notice.related_id == result.follow_up_appointment.id
    assert follow_up_notice.created_at == datetime(2025, 6, 10, 9, 0)

    completed_notice = Notification.query.filter_by(type=notification_service.CONSULTATION_COMPLETED).one()
    assert completed_notice.user_id == patient.user_id
    assert completed_notice.related_id == confirmed_appointment.id


def test_completion_result_payload(confirmed_appointment, doctor):
    payload = complete_appointment(actor_for(doctor), confirmed_appointment.id, FOLLOW_UP).to_dict()

    assert payload['appointment']['status'] == COMPLETED
    assert payload['consultation']['symptoms'] == 'fever'
    assert payload['follow_up_appointment']['status'] == PENDING
    assert payload['warnings'] == []


def test_report_payload(confirmed_appointment, doctor, patient):
    result = complete_appointment(actor_for(doctor), confirmed_appointment.id, {'symptoms': 'fever'})

    report = result.consultation.to_report()
    assert report['patient']['full_name'] == 'Sita Sharma'
    assert report['patient']['phone'] == patient.phone
    assert report['doctor']['full_name'] == 'Anita Rai'
    assert report['doctor']['qualifications'] == 'MBBS'
    assert report['appointment']['date'] == '2025-06-01T10:00:00'


def test_status_race_rolls_back_consultation(confirmed_appointment, doctor, monkeypatch):
    real_apply = consultation_service.apply_transition

    def cancelled_meanwhile(appointment, new_state, expected_status, commit=True):
        Appointment.query.filter_by(id=appointment.id).update(
            {'status': 'cancelled'}, synchronize_session=False
        )
        return real_apply(appointment, new_state, expected_status, commit=commit)

    monkeypatch.setattr(consultation_service, 'apply_transition', cancelled_meanwhile)

    with pytest.raises(StaleStateConflict):
        complete_appointment(actor_for(doctor), confirmed_appointment.id, FOLLOW_UP)

    assert Consultation.query.count() == 0
    assert Appointment.query.count() == 1
    assert db.session.get(Appointment, confirmed_appointment.id).status == CONFIRMED


def test_non_object_consultation_details():
    with pytest.raises(PreconditionFailed):
        parse_consultation_data(['fever'])
