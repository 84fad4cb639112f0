"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from restrona.core.config import get_settings, Settings, EnvironmentMode
from restrona.core.errors import (
    RestronaError,
    ValidationError,
    AuthorizationError,
    IllegalTransitionError,
    ConflictError,
    NotFoundError,
    PersistenceError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "RestronaError",
    "ValidationError",
    "AuthorizationError",
    "IllegalTransitionError",
    "ConflictError",
    "NotFoundError",
    "PersistenceError",
]
