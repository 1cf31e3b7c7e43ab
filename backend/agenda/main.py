"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agenda.config import settings
from agenda.database import lifespan_db
from agenda.utils.logging import get_logger, setup_logging

# Setup logging
setup_logging(debug=settings.debug)

from agenda.api import (  # noqa: E402
    admin_router,
    agenda_settings_router,
    appointments_router,
    auth_router,
    clients_router,
    payments_router,
    session_notes_router,
)

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    async with lifespan_db():
        logger.info("application_started", app=settings.app_name, version=settings.app_version)
        yield


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Scheduling and client management for independent professionals",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix="/auth", tags=["Authentication"])
app.include_router(clients_router, prefix="/clients", tags=["Clients"])
app.include_router(appointments_router, prefix="/appointments", tags=["Appointments"])
app.include_router(payments_router, prefix="/payments", tags=["Payments"])
app.include_router(session_notes_router, prefix="/notes", tags=["Session notes"])
app.include_router(agenda_settings_router, prefix="/settings", tags=["Settings"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "connected",
    }
