"""Single source of truth for "what sort of calendar entry is this".

Rows carry ``appointment_type``, ``session_type`` and ``recurrence_group_id``;
code paths branch on an ``AppointmentKind`` instead and the columns are
derived from it when writing.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Union

from agenda.models.appointment import AppointmentType, SessionType


@dataclass(frozen=True)
class Single:
    pass


@dataclass(frozen=True)
class Recurring:
    group_id: str


@dataclass(frozen=True)
class Personal:
    pass


@dataclass(frozen=True)
class Block:
    pass


AppointmentKind = Union[Single, Recurring, Personal, Block]


def kind_columns(kind: AppointmentKind) -> Dict[str, Optional[str]]:
    """Column values to persist for ``kind``."""
    if isinstance(kind, Recurring):
        return {
            "appointment_type": AppointmentType.APPOINTMENT.value,
            "session_type": SessionType.RECURRING.value,
            "recurrence_group_id": kind.group_id,
        }
    if isinstance(kind, Personal):
        return {
            "appointment_type": AppointmentType.PERSONAL.value,
            "session_type": SessionType.PERSONAL.value,
            "recurrence_group_id": None,
        }
    if isinstance(kind, Block):
        return {
            "appointment_type": AppointmentType.BLOCK.value,
            "session_type": SessionType.PERSONAL.value,
            "recurrence_group_id": None,
        }
    return {
        "appointment_type": AppointmentType.APPOINTMENT.value,
        "session_type": SessionType.SINGLE.value,
        "recurrence_group_id": None,
    }


def kind_of(row) -> AppointmentKind:
    """Read the kind back from a stored row.

    ``recurrence_group_id`` and ``appointment_type`` win over ``session_type``.
    """
    if row.recurrence_group_id:
        return Recurring(row.recurrence_group_id)
    if row.appointment_type == AppointmentType.BLOCK.value:
        return Block()
    if row.appointment_type == AppointmentType.PERSONAL.value:
        return Personal()
    return Single()


def requires_client(kind: AppointmentKind) -> bool:
    return isinstance(kind, (Single, Recurring))


def kind_name(kind: AppointmentKind) -> str:
    return type(kind).__name__.lower()
