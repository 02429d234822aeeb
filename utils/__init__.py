"""
Utils Module
Shared logging and error types
"""
from .logger import setup_logger, get_logger, emit_event
from .exceptions import (
    MentionFlowError,
    BadRequestError,
    ConfigurationError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    ProviderError,
    StateTransitionError,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "emit_event",
    "MentionFlowError",
    "BadRequestError",
    "ConfigurationError",
    "ForbiddenError",
    "NotFoundError",
    "PersistenceError",
    "ProviderError",
    "StateTransitionError",
]
