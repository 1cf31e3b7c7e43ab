"""Helpers for session notes shared by the notes and client endpoints."""

from typing import Any, Iterable, List, Set

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.models.session_note import SessionNote

SUMMARY_LENGTH = 200


def extract_text(content: Any) -> str:
    """Plain text of a note, whether stored as a string or an editor document."""
    parts: List[str] = []

    def walk(node: Any) -> None:
        if node is None:
            return
        if isinstance(node, str):
            parts.append(node)
        elif isinstance(node, list):
            for child in node:
                walk(child)
        elif isinstance(node, dict):
            if isinstance(node.get("text"), str):
                parts.append(node["text"])
            walk(node.get("content"))

    walk(content)
    return " ".join(" ".join(p.split()) for p in parts if p.strip())


def summarize(content: Any, length: int = SUMMARY_LENGTH) -> str:
    text = extract_text(content)
    if len(text) <= length:
        return text
    return text[: length - 1].rstrip() + "…"


async def appointments_with_notes(
    db: AsyncSession,
    user_id: int,
    appointment_ids: Iterable[int],
) -> Set[int]:
    ids = list(appointment_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(SessionNote.appointment_id).where(
            SessionNote.user_id == user_id,
            SessionNote.appointment_id.in_(ids),
        )
    )
    return set(result.scalars().all())


async def detach_notes(db: AsyncSession, user_id: int, appointment_ids: List[int]) -> int:
    """Unlink notes from appointments about to be deleted; the notes stay on the client."""
    if not appointment_ids:
        return 0
    result = await db.execute(
        update(SessionNote)
        .where(
            SessionNote.user_id == user_id,
            SessionNote.appointment_id.in_(appointment_ids),
        )
        .values(appointment_id=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
