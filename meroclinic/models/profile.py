"""
Identity and profile records.

Profiles are owned by the identity and profile-editor services; this backend
only reads them to authorize transitions, address notifications and check
booking preconditions.
"""
from meroclinic.extensions import db
from .base import TimestampMixin

ROLES = ('patient', 'doctor', 'admin')


class Profile(db.Model, TimestampMixin):
    __tablename__ = 'profiles'

    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.String(20), nullable=False, index=True)  # patient, doctor, admin
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    avatar_url = db.Column(db.String(500), nullable=True)

    def __repr__(self):
        return f"<Profile {self.full_name} - {self.role}>"


class PatientProfile(db.Model, TimestampMixin):
    __tablename__ = 'patient_profiles'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False, unique=True, index=True)
    phone = db.Column(db.String(20))
    address = db.Column(db.Text)
    date_of_birth = db.Column(db.Date, nullable=True)

    user = db.relationship('Profile', backref=db.backref('patient_profile', uselist=False), lazy=True)

    @property
    def full_name(self):
        return self.user.full_name if self.user else None

    def is_complete(self):
        """Booking requires both a phone number and an address."""
        return bool((self.phone or '').strip()) and bool((self.address or '').strip())

    def missing_fields(self):
        return [name for name in ('phone', 'address') if not (getattr(self, name) or '').strip()]

    def __repr__(self):
        return f"<PatientProfile {self.id} (user {self.user_id})>"


class DoctorProfile(db.Model, TimestampMixin):
    __tablename__ = 'doctor_profiles'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False, unique=True, index=True)
    qualifications = db.Column(db.String(255))
    contact_phone = db.Column(db.String(20))
    location = db.Column(db.String(255))  # default practice address
    is_verified = db.Column(db.Boolean, default=False, nullable=False)  # set by admin review

    user = db.relationship('Profile', backref=db.backref('doctor_profile', uselist=False), lazy=True)

    @property
    def full_name(self):
        return self.user.full_name if self.user else None

    def __repr__(self):
        return f"<DoctorProfile {self.id} (user {self.user_id}) verified={self.is_verified}>"
