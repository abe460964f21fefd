from meroclinic.extensions import db
from .base import TimestampMixin
from .appointment_state import PENDING, OFFLINE, state_of, resolve_display_date


def _iso(value):
    return value.isoformat() if value else None


class Appointment(db.Model, TimestampMixin):
    __tablename__ = 'appointments'

    id = db.Column(db.Integer, primary_key=True)

    # Parties (immutable after creation)
    patient_id = db.Column(db.Integer, db.ForeignKey('patient_profiles.id'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('doctor_profiles.id'), nullable=False, index=True)

    # Status: pending, proposed, confirmed, completed, cancelled
    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)

    requested_date = db.Column(db.DateTime, nullable=False)  # set at booking, never changed
    proposed_date = db.Column(db.DateTime, nullable=True)    # doctor's counter-proposal
    confirmed_date = db.Column(db.DateTime, nullable=True)   # agreed time

    appointment_type = db.Column(db.String(10), nullable=False, default=OFFLINE)  # online, offline
    location = db.Column(db.String(255), nullable=False, default='')  # offline only

    patient_notes = db.Column(db.Text, nullable=False, default='')
    doctor_notes = db.Column(db.Text, nullable=False, default='')

    # Video call bookkeeping, written by the call service
    call_session_id = db.Column(db.String(64), nullable=True)
    call_status = db.Column(db.String(20), nullable=True)
    call_started_at = db.Column(db.DateTime, nullable=True)
    call_ended_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    patient = db.relationship('PatientProfile', backref=db.backref('appointments', lazy='dynamic'), lazy=True)
    doctor = db.relationship('DoctorProfile', backref=db.backref('appointments', lazy='dynamic'), lazy=True)

    @property
    def display_date(self):
        """The appointment's current scheduled time, whatever its status."""
        return resolve_display_date(self.confirmed_date, self.proposed_date, self.requested_date)

    @property
    def state(self):
        return state_of(self)

    def __repr__(self):
        return f"<Appointment {self.id} patient={self.patient_id} doctor={self.doctor_id} {self.status}>"

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            'id': self.id,
            'patient_id': self.patient_id,
            'patient_name': self.patient.full_name if self.patient else None,
            'doctor_id': self.doctor_id,
            'doctor_name': self.doctor.full_name if self.doctor else None,
            'status': self.status,
            'requested_date': _iso(self.requested_date),
            'proposed_date': _iso(self.proposed_date),
            'confirmed_date': _iso(self.confirmed_date),
            'display_date': _iso(self.display_date),
            'appointment_type': self.appointment_type,
            'location': self.location or '',
            'patient_notes': self.patient_notes or '',
            'doctor_notes': self.doctor_notes or '',
            'call_session_id': self.call_session_id,
            'call_status': self.call_status,
            'call_started_at': _iso(self.call_started_at),
            'call_ended_at': _iso(self.call_ended_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
