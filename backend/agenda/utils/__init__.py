"""Utils package initialization."""

from agenda.utils.logging import MutationLogger, get_logger, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "MutationLogger",
]
