import pytest

from restrona.core.errors import (
    AuthorizationError,
    DenyReason,
    IllegalTransitionError,
    PersistenceError,
    ValidationError,
    retry_persistence,
)
from restrona.models import OrderStatus


def test_error_body():
    error = IllegalTransitionError(OrderStatus.CONFIRMED, OrderStatus.READY)

    assert error.to_dict() == {
        "success": False,
        "error": "illegal_transition",
        "detail": "Cannot move order from 'confirmed' to 'ready'",
        "context": {"current_status": "confirmed", "target_status": "ready"},
    }


def test_unauthenticated_maps_to_401():
    assert AuthorizationError("who are you", reason=DenyReason.UNAUTHENTICATED).status_code == 401
    assert AuthorizationError("not yours", reason=DenyReason.TENANT_MISMATCH).status_code == 403


async def test_retry_until_success():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise PersistenceError("store busy")
        return "saved"

    assert await retry_persistence(flaky, attempts=3, backoff_seconds=0) == "saved"
    assert len(calls) == 3


async def test_retry_gives_up():
    calls = []

    async def down():
        calls.append(1)
        raise PersistenceError("store down")

    with pytest.raises(PersistenceError):
        await retry_persistence(down, attempts=2, backoff_seconds=0)
    assert len(calls) == 2


async def test_other_errors_are_not_retried():
    calls = []

    async def invalid():
        calls.append(1)
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        await retry_persistence(invalid, attempts=5, backoff_seconds=0)
    assert len(calls) == 1
