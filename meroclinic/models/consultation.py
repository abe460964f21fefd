"""
Consultation record, written once when a confirmed appointment is completed.
"""
from meroclinic.extensions import db
from .base import TimestampMixin


class Consultation(db.Model, TimestampMixin):
    __tablename__ = 'consultations'

    id = db.Column(db.Integer, primary_key=True)
    # One consultation per appointment; enforced by the recorder
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patient_profiles.id'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('doctor_profiles.id'), nullable=False, index=True)

    symptoms = db.Column(db.Text, nullable=False, default='')
    medicines = db.Column(db.Text, nullable=False, default='')
    additional_advice = db.Column(db.Text, nullable=False, default='')

    follow_up = db.Column(db.Boolean, nullable=False, default=False)
    follow_up_date = db.Column(db.DateTime, nullable=True, index=True)

    appointment = db.relationship('Appointment', backref=db.backref('consultation', uselist=False), lazy=True)
    patient = db.relationship('PatientProfile', lazy=True)
    doctor = db.relationship('DoctorProfile', lazy=True)

    def __repr__(self):
        return f"<Consultation {self.id} - Appointment: {self.appointment_id}>"

    def to_dict(self):
        return {
            'id': self.id,
            'appointment_id': self.appointment_id,
            'patient_id': self.patient_id,
            'doctor_id': self.doctor_id,
            'symptoms': self.symptoms or '',
            'medicines': self.medicines or '',
            'additional_advice': self.additional_advice or '',
            'follow_up': self.follow_up,
            'follow_up_date': self.follow_up_date.isoformat() if self.follow_up_date else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def to_report(self):
        """
        Everything the report renderer needs for one consultation document:
        both parties' identity, the visit time and the clinical outcome.
        """
        appointment = self.appointment
        patient = self.patient
        doctor = self.doctor
        return {
            'consultation': self.to_dict(),
            'appointment': {
                'id': appointment.id,
                'appointment_type': appointment.appointment_type,
                'location': appointment.location or '',
                'date': appointment.display_date.isoformat() if appointment.display_date else None,
            },
            'patient': {
                'id': patient.id,
                'full_name': patient.full_name,
                'phone': patient.phone,
                'address': patient.address,
                'date_of_birth': patient.date_of_birth.isoformat() if patient.date_of_birth else None,
            },
            'doctor': {
                'id': doctor.id,
                'full_name': doctor.full_name,
                'qualifications': doctor.qualifications,
                'contact_phone': doctor.contact_phone,
            },
        }
