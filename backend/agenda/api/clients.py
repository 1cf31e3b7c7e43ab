"""Client records API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.api.appointments import appointment_response
from agenda.database import get_db
from agenda.models.appointment import Appointment
from agenda.models.client import Client
from agenda.models.user import User
from agenda.schemas.appointment import AppointmentListResponse
from agenda.schemas.client import (
    ClientCreate,
    ClientListResponse,
    ClientResponse,
    ClientStats,
    ClientUpdate,
)
from agenda.services.context import SchedulingContext, get_scheduling_context
from agenda.services.payment_service import client_stats
from agenda.services.session_notes import appointments_with_notes
from agenda.utils.security import get_current_user

router = APIRouter()


async def _get_client(db: AsyncSession, client_id: int, user_id: int) -> Client:
    result = await db.execute(
        select(Client).where(Client.id == client_id, Client.user_id == user_id)
    )
    client = result.scalar_one_or_none()
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return client


@router.get("/", response_model=ClientListResponse)
async def list_clients(
    search: Optional[str] = None,
    is_active: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ClientListResponse:
    query = select(Client).where(Client.user_id == current_user.id)
    if is_active is not None:
        query = query.where(Client.is_active == is_active)
    if search:
        term = f"%{search.strip()}%"
        query = query.where(
            or_(Client.name.ilike(term), Client.email.ilike(term), Client.phone.ilike(term))
        )

    result = await db.execute(query.order_by(Client.name.asc()))
    clients = result.scalars().all()
    return ClientListResponse(
        clients=[ClientResponse.model_validate(c) for c in clients],
        total=len(clients),
    )


@router.post("/", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    request: ClientCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Client:
    client = Client(user_id=current_user.id, **request.model_dump())
    db.add(client)
    await db.flush()
    await db.refresh(client)
    return client


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Client:
    return await _get_client(db, client_id, current_user.id)


@router.put("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    request: ClientUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Client:
    client = await _get_client(db, client_id, current_user.id)
    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(client, field, value)
    await db.flush()
    await db.refresh(client)
    return client


@router.delete("/{client_id}", response_model=ClientResponse)
async def deactivate_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Client:
    """Deactivate a client. Their appointments and payments are kept."""
    client = await _get_client(db, client_id, current_user.id)
    client.is_active = False
    await db.flush()
    await db.refresh(client)
    return client


@router.get("/{client_id}/appointments", response_model=AppointmentListResponse)
async def list_client_appointments(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> AppointmentListResponse:
    await _get_client(db, client_id, ctx.user_id)
    result = await db.execute(
        select(Appointment)
        .where(Appointment.user_id == ctx.user_id, Appointment.client_id == client_id)
        .order_by(Appointment.start_time.desc())
    )
    rows = result.scalars().all()
    noted = await appointments_with_notes(db, ctx.user_id, [a.id for a in rows])
    appointments = [appointment_response(a, ctx, has_note=a.id in noted) for a in rows]
    return AppointmentListResponse(appointments=appointments, total=len(appointments))


@router.get("/{client_id}/stats", response_model=ClientStats)
async def get_client_stats(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ClientStats:
    await _get_client(db, client_id, current_user.id)
    return ClientStats(**await client_stats(db, current_user.id, client_id))
