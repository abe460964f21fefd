from .profile import Profile, PatientProfile, DoctorProfile
from .appointment import Appointment
from .consultation import Consultation
from .notification import AppointmentEvent, Notification
from .audit_log import AuditLog

__all__ = ["Profile", "PatientProfile", "DoctorProfile", "Appointment", "Consultation", "AppointmentEvent", "Notification", "AuditLog"]
