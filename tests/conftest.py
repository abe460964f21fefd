from datetime import datetime

import pytest
from flask_jwt_extended import create_access_token

from meroclinic import create_app
from meroclinic.extensions import db
from meroclinic.models import Profile, PatientProfile, DoctorProfile, Appointment
from meroclinic.models.appointment_state import CONFIRMED
from meroclinic.utils.decorators import Actor


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _make_patient(name, email, phone='9800000000', address='Baneshwor, Kathmandu'):
    user = Profile(role='patient', full_name=name, email=email)
    db.session.add(user)
    db.session.flush()
    profile = PatientProfile(user_id=user.id, phone=phone, address=address)
    db.session.add(profile)
    db.session.commit()
    return profile


def _make_doctor(name, email, verified=True):
    user = Profile(role='doctor', full_name=name, email=email)
    db.session.add(user)
    db.session.flush()
    profile = DoctorProfile(user_id=user.id, qualifications='MBBS', location='Clinic A', is_verified=verified)
    db.session.add(profile)
    db.session.commit()
    return profile


@pytest.fixture
def patient(app):
    return _make_patient('Sita Sharma', 'sita@example.com')


@pytest.fixture
def other_patient(app):
    return _make_patient('Ram Thapa', 'ram@example.com')


@pytest.fixture
def incomplete_patient(app):
    return _make_patient('Hari Karki', 'hari@example.com', phone='', address=None)


@pytest.fixture
def doctor(app):
    return _make_doctor('Anita Rai', 'anita@example.com')


@pytest.fixture
def other_doctor(app):
    return _make_doctor('Bikash Gurung', 'bikash@example.com')


@pytest.fixture
def unverified_doctor(app):
    return _make_doctor('Kiran Shah', 'kiran@example.com', verified=False)


def actor_for(profile):
    """Actor for a patient or doctor profile row."""
    return Actor(user_id=profile.user_id, role=profile.user.role)


def auth_headers(profile_or_user, role=None):
    user = getattr(profile_or_user, 'user', profile_or_user)
    token = create_access_token(
        identity=str(user.id),
        additional_claims={'role': role or user.role}
    )
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def confirmed_appointment(app, patient, doctor):
    appointment = Appointment(
        patient_id=patient.id,
        doctor_id=doctor.id,
        status=CONFIRMED,
        requested_date=datetime(2025, 6, 1, 10, 0),
        confirmed_date=datetime(2025, 6, 1, 10, 0),
        appointment_type='offline',
    )
    db.session.add(appointment)
    db.session.commit()
    return appointment
