"""
Appointment status values.

Each status has its own immutable state class carrying only the fields that
are valid for it. The negotiation engine writes an appointment by building
the target state and applying its ``fields()`` to the row, so a row can never
reach ``confirmed`` or ``completed`` without a ``confirmed_date``.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Dict, Optional

PENDING = 'pending'
PROPOSED = 'proposed'
CONFIRMED = 'confirmed'
COMPLETED = 'completed'
CANCELLED = 'cancelled'

STATUSES = (PENDING, PROPOSED, CONFIRMED, COMPLETED, CANCELLED)
TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED})
ACTIVE_STATUSES = (PENDING, PROPOSED, CONFIRMED)

ONLINE = 'online'
OFFLINE = 'offline'
APPOINTMENT_TYPES = (ONLINE, OFFLINE)


class InvalidAppointmentState(ValueError):
    """Raised when a state is built without the fields its status requires."""


def _require(status, **values):
    missing = [name for name, value in values.items() if value is None]
    if missing:
        raise InvalidAppointmentState(
            f"A {status} appointment requires {', '.join(missing)}"
        )


@dataclass(frozen=True)
class Pending:
    requested_date: datetime
    status: ClassVar[str] = PENDING

    def __post_init__(self):
        _require(self.status, requested_date=self.requested_date)

    def fields(self) -> Dict[str, object]:
        return {'status': self.status, 'requested_date': self.requested_date}


@dataclass(frozen=True)
class Proposed:
    proposed_date: datetime
    location: str = ''
    doctor_notes: str = ''
    status: ClassVar[str] = PROPOSED

    def __post_init__(self):
        _require(self.status, proposed_date=self.proposed_date)

    def fields(self) -> Dict[str, object]:
        return {
            'status': self.status,
            'proposed_date': self.proposed_date,
            'location': self.location or '',
            'doctor_notes': self.doctor_notes or '',
        }


@dataclass(frozen=True)
class Confirmed:
    confirmed_date: datetime
    status: ClassVar[str] = CONFIRMED

    def __post_init__(self):
        _require(self.status, confirmed_date=self.confirmed_date)

    def fields(self) -> Dict[str, object]:
        return {'status': self.status, 'confirmed_date': self.confirmed_date}


@dataclass(frozen=True)
class Completed:
    confirmed_date: datetime
    status: ClassVar[str] = COMPLETED

    def __post_init__(self):
        _require(self.status, confirmed_date=self.confirmed_date)

    def fields(self) -> Dict[str, object]:
        return {'status': self.status, 'confirmed_date': self.confirmed_date}


@dataclass(frozen=True)
class Cancelled:
    status: ClassVar[str] = CANCELLED

    def fields(self) -> Dict[str, object]:
        return {'status': self.status}


def state_of(appointment):
    """Build the state value for a stored appointment row."""
    status = appointment.status
    if status == PENDING:
        return Pending(requested_date=appointment.requested_date)
    if status == PROPOSED:
        return Proposed(
            proposed_date=appointment.proposed_date,
            location=appointment.location or '',
            doctor_notes=appointment.doctor_notes or '',
        )
    if status == CONFIRMED:
        return Confirmed(confirmed_date=appointment.confirmed_date)
    if status == COMPLETED:
        return Completed(confirmed_date=appointment.confirmed_date)
    if status == CANCELLED:
        return Cancelled()
    raise InvalidAppointmentState(f"Unknown appointment status: {status}")


def resolve_display_date(confirmed_date: Optional[datetime],
                         proposed_date: Optional[datetime],
                         requested_date: Optional[datetime]) -> Optional[datetime]:
    """confirmed_date, then proposed_date, then requested_date."""
    if confirmed_date is not None:
        return confirmed_date
    if proposed_date is not None:
        return proposed_date
    return requested_date
