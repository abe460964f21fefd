"""
Errors raised by the appointment services.

Each carries the HTTP status the API answers with and, for validation
failures, the request field that caused it.
"""


class AppointmentError(Exception):
    status_code = 400

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self):
        payload = {'success': False, 'error': self.message}
        if self.field:
            payload['field'] = self.field
        return payload


class AuthorizationViolation(AppointmentError):
    """The actor's role or party does not allow this transition."""
    status_code = 403


class PreconditionFailed(AppointmentError):
    """Input or profile state rejected before any write."""
    status_code = 400


class StaleStateConflict(AppointmentError):
    """The appointment is no longer in the status the transition expects."""
    status_code = 409


class NotFound(AppointmentError):
    status_code = 404
