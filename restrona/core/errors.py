"""
Error Taxonomy

Every service raises one of these instead of returning a failure flag.
The HTTP layer maps them to status codes in one place (see main.py).

    ValidationError         bad input shape or values              400
    AuthorizationError      unauthenticated / role / tenant        401 / 403
    NotFoundError           missing entity                         404
    IllegalTransitionError  order status machine violation         409
    ConflictError           lost a conditional-update race         409
    PersistenceError        store I/O failure (retryable)          503
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DenyReason(str, Enum):
    """Why the authorization gate refused an action."""
    WRONG_ROLE = "WRONG_ROLE"
    MISSING_PERMISSION = "MISSING_PERMISSION"
    TENANT_MISMATCH = "TENANT_MISMATCH"
    UNAUTHENTICATED = "UNAUTHENTICATED"


class RestronaError(Exception):
    """Base class for all domain errors."""

    code: str = "error"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Convert to the JSON error body."""
        body = {
            "success": False,
            "error": self.code,
            "detail": self.message,
        }
        if self.details:
            body["context"] = {k: _plain(v) for k, v in self.details.items()}
        return body


class ValidationError(RestronaError):
    code = "validation_error"
    status_code = 400


class AuthorizationError(RestronaError):
    code = "authorization_error"
    status_code = 403

    def __init__(self, message: str, reason: DenyReason = DenyReason.MISSING_PERMISSION, **details: Any):
        super().__init__(message, reason=reason, **details)
        self.reason = reason
        if reason == DenyReason.UNAUTHENTICATED:
            self.status_code = 401


class NotFoundError(RestronaError):
    code = "not_found"
    status_code = 404


class IllegalTransitionError(RestronaError):
    code = "illegal_transition"
    status_code = 409

    def __init__(self, current: Any, target: Any):
        super().__init__(
            f"Cannot move order from '{_plain(current)}' to '{_plain(target)}'",
            current_status=current,
            target_status=target,
        )
        self.current = current
        self.target = target


class ConflictError(RestronaError):
    code = "conflict"
    status_code = 409


class PersistenceError(RestronaError):
    code = "persistence_error"
    status_code = 503
    retryable = True


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


async def retry_persistence(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    backoff_seconds: float = 0.2,
    label: Optional[str] = None,
) -> T:
    """
    Run ``operation`` and retry it on PersistenceError only.

    Waits ``backoff_seconds * 2**n`` between attempts. Every other error
    propagates on the first occurrence.
    """
    attempts = max(1, attempts)
    name = label or getattr(operation, "__name__", "operation")

    for attempt in range(attempts):
        try:
            return await operation()
        except PersistenceError as e:
            if attempt + 1 >= attempts:
                logger.error(f"{name}: giving up after {attempts} attempts - {e.message}")
                raise
            delay = backoff_seconds * (2 ** attempt)
            logger.warning(
                f"{name}: attempt {attempt + 1} failed ({e.message}), retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
