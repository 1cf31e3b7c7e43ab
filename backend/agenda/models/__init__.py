"""Models package initialization."""

from agenda.models.agenda_settings import AgendaSettings, default_working_hours
from agenda.models.appointment import (
    Appointment,
    AppointmentStatus,
    AppointmentType,
    RecurrenceType,
    SessionType,
)
from agenda.models.audit_log import AuditAction, AuditLog
from agenda.models.client import Client
from agenda.models.payment import Payment, PaymentStatus
from agenda.models.session_note import SessionNote
from agenda.models.user import User, UserRole

__all__ = [
    # User
    "User",
    "UserRole",
    # Client
    "Client",
    # Appointment
    "Appointment",
    "AppointmentStatus",
    "AppointmentType",
    "SessionType",
    "RecurrenceType",
    # Payment
    "Payment",
    "PaymentStatus",
    # Notes
    "SessionNote",
    # Settings
    "AgendaSettings",
    "default_working_hours",
    # Audit
    "AuditLog",
    "AuditAction",
]
