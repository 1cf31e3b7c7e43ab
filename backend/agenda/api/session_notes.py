"""Session notes API endpoints."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.database import get_db
from agenda.models.appointment import Appointment
from agenda.models.session_note import SessionNote
from agenda.schemas.session_note import (
    SessionNoteCreate,
    SessionNoteListResponse,
    SessionNoteResponse,
    SessionNoteUpdate,
)
from agenda.services.context import SchedulingContext, get_scheduling_context
from agenda.services.session_notes import summarize
from agenda.utils.logging import get_logger
from agenda.utils.timeutils import ensure_utc

logger = get_logger("api.session_notes")

router = APIRouter()


def _note_response(
    note: SessionNote,
    ctx: SchedulingContext,
    session_start: Optional[datetime] = None,
) -> SessionNoteResponse:
    return SessionNoteResponse(
        id=note.id,
        client_id=note.client_id,
        client_name=ctx.client_name(note.client_id),
        appointment_id=note.appointment_id,
        session_start=ensure_utc(session_start) if session_start else None,
        content=note.content,
        summary=summarize(note.content),
        created_at=note.created_at,
        updated_at=note.updated_at,
    )


async def _get_note(db: AsyncSession, note_id: int, user_id: int):
    result = await db.execute(
        select(SessionNote, Appointment.start_time)
        .outerjoin(Appointment, Appointment.id == SessionNote.appointment_id)
        .where(SessionNote.id == note_id, SessionNote.user_id == user_id)
    )
    row = result.one_or_none()
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")
    return row


@router.get("/", response_model=SessionNoteListResponse)
async def list_notes(
    client_id: Optional[int] = None,
    appointment_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> SessionNoteListResponse:
    """Notes newest first, each with the start of its session when still linked."""
    query = (
        select(SessionNote, Appointment.start_time)
        .outerjoin(Appointment, Appointment.id == SessionNote.appointment_id)
        .where(SessionNote.user_id == ctx.user_id)
    )
    if client_id is not None:
        query = query.where(SessionNote.client_id == client_id)
    if appointment_id is not None:
        query = query.where(SessionNote.appointment_id == appointment_id)

    result = await db.execute(
        query.order_by(SessionNote.created_at.desc(), SessionNote.id.desc())
    )
    notes = [_note_response(note, ctx, start) for note, start in result.all()]
    return SessionNoteListResponse(notes=notes, total=len(notes))


@router.post("/", response_model=SessionNoteResponse, status_code=status.HTTP_201_CREATED)
async def create_note(
    request: SessionNoteCreate,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> SessionNoteResponse:
    result = await db.execute(
        select(Appointment).where(
            Appointment.id == request.appointment_id,
            Appointment.user_id == ctx.user_id,
        )
    )
    appointment = result.scalar_one_or_none()
    if appointment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    if appointment.client_id is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Notes can only be written for client sessions",
        )

    existing = await db.execute(
        select(SessionNote.id).where(SessionNote.appointment_id == appointment.id)
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This session already has a note",
        )

    note = SessionNote(
        user_id=ctx.user_id,
        client_id=appointment.client_id,
        appointment_id=appointment.id,
        content=request.content,
    )
    db.add(note)
    await db.flush()
    await db.refresh(note)

    logger.info(
        "session_note_created",
        user_id=ctx.user_id,
        note_id=note.id,
        appointment_id=appointment.id,
    )
    return _note_response(note, ctx, appointment.start_time)


@router.get("/{note_id}", response_model=SessionNoteResponse)
async def get_note(
    note_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> SessionNoteResponse:
    note, start = await _get_note(db, note_id, ctx.user_id)
    return _note_response(note, ctx, start)


@router.put("/{note_id}", response_model=SessionNoteResponse)
async def update_note(
    note_id: int,
    request: SessionNoteUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> SessionNoteResponse:
    note, start = await _get_note(db, note_id, ctx.user_id)
    note.content = request.content
    await db.flush()
    await db.refresh(note)
    return _note_response(note, ctx, start)


@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_note(
    note_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> None:
    result = await db.execute(
        delete(SessionNote)
        .where(SessionNote.id == note_id, SessionNote.user_id == ctx.user_id)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")
    logger.info("session_note_deleted", user_id=ctx.user_id, note_id=note_id)
