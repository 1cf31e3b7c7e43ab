"""Domain errors raised by the scheduling services.

Routes translate these into ``HTTPException`` responses.
"""

from typing import Any, Dict, List, Optional


class SchedulingError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class AppointmentNotFoundError(SchedulingError):
    def __init__(self, message: str = "Appointment not found or already deleted"):
        super().__init__(message, status_code=404)


class ClientNotFoundError(SchedulingError):
    def __init__(self, message: str = "Client not found"):
        super().__init__(message, status_code=404)


class MutationInProgressError(SchedulingError):
    def __init__(self, message: str = "Another change to this appointment is still being applied"):
        super().__init__(message, status_code=409)


class ScopeChoiceRequired(SchedulingError):
    """Raised when a recurring mutation needs the user to pick a scope first."""

    def __init__(
        self,
        prompt: str,
        choices: List[str],
        conflicts: Optional[List[Dict[str, Any]]] = None,
    ):
        self.prompt = prompt
        self.choices = choices
        self.conflicts = conflicts or []
        super().__init__(f"Choice required: {prompt}", status_code=409)

    def to_detail(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "prompt": self.prompt,
            "choices": self.choices,
            "conflicts": self.conflicts,
        }
