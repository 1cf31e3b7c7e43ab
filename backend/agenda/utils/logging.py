"""Structured logging utilities."""

import logging
import sys
from typing import Any, Optional

import structlog


def setup_logging(debug: bool = False) -> None:
    """Configure structured logging for the application."""

    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance for the given name."""
    return structlog.get_logger(name)


class MutationLogger:
    """Logger for appointment mutation state transitions."""

    def __init__(self, user_id: int, appointment_id: Optional[int] = None):
        self.logger = get_logger("agenda.mutation")
        self.user_id = user_id
        self.appointment_id = appointment_id

    def log(self, event: str, **kwargs: Any) -> None:
        self.logger.info(
            event,
            user_id=self.user_id,
            appointment_id=self.appointment_id,
            **kwargs,
        )

    def error(self, event: str, **kwargs: Any) -> None:
        self.logger.error(
            event,
            user_id=self.user_id,
            appointment_id=self.appointment_id,
            **kwargs,
        )

    def transition(self, from_state: str, to_state: str, **kwargs: Any) -> None:
        """Log a coordinator state change."""
        self.logger.debug(
            "mutation_state_changed",
            user_id=self.user_id,
            appointment_id=self.appointment_id,
            from_state=from_state,
            to_state=to_state,
            **kwargs,
        )
