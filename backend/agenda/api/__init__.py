"""API package initialization."""

from agenda.api.admin import router as admin_router
from agenda.api.agenda_settings import router as agenda_settings_router
from agenda.api.appointments import router as appointments_router
from agenda.api.auth import router as auth_router
from agenda.api.clients import router as clients_router
from agenda.api.payments import router as payments_router
from agenda.api.session_notes import router as session_notes_router

__all__ = [
    "auth_router",
    "clients_router",
    "appointments_router",
    "payments_router",
    "session_notes_router",
    "agenda_settings_router",
    "admin_router",
]
