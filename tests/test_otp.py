import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from restrona.core.config import get_settings
from restrona.core.errors import PersistenceError, ValidationError
from restrona.models import OtpVerification, User, utcnow
from restrona.services.notifications import MockNotificationService
from restrona.services.otp import OtpService, hash_code, normalize_phone

PHONE = "+15550001111"


@pytest.fixture
def otp(db, notifications):
    return OtpService(db, notifications)


@pytest.fixture
def fixed_codes(otp, monkeypatch):
    codes = iter(["111111", "222222", "333333"])
    monkeypatch.setattr(otp, "_generate_code", lambda: next(codes))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("+1 (555) 000-1111", "+15550001111"),
        ("555.000.1111", "5550001111"),
        ("+393331234567", "+393331234567"),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", ["", "12345", "phone-number", "+1234567890123456"])
def test_invalid_phone(raw):
    with pytest.raises(ValidationError):
        normalize_phone(raw)


async def test_send_stores_only_a_hash(otp, db, notifications):
    dispatch = await otp.send_code(PHONE)

    assert len(dispatch.code) == get_settings().otp_length
    assert dispatch.expires_at > utcnow()
    record = await db.get(OtpVerification, PHONE)
    assert record.code_hash == hash_code(PHONE, dispatch.code)
    assert notifications.sent[-1][0] == PHONE
    assert dispatch.code in notifications.sent[-1][1]


async def test_code_hidden_when_not_exposed(db, notifications):
    settings = get_settings().model_copy(update={"otp_expose_code": False})
    dispatch = await OtpService(db, notifications, settings=settings).send_code(PHONE)
    assert dispatch.code is None


async def test_sms_failure_is_retryable(db):
    service = OtpService(db, MockNotificationService(failure_rate=1.0))
    with pytest.raises(PersistenceError):
        await service.send_code(PHONE)


async def test_verify_marks_staff_phone_verified(otp, seed, session_maker, fixed_codes):
    await otp.send_code(PHONE)
    assert await otp.verify_code(PHONE, "111111") is True

    async with session_maker() as session:
        waiter = await session.get(User, seed.waiter.id)
        assert waiter.phone_verified is True


async def test_wrong_code_counts_attempts(otp, db, fixed_codes):
    await otp.send_code(PHONE)

    with pytest.raises(ValidationError):
        await otp.verify_code(PHONE, "999999")
    record = await db.get(OtpVerification, PHONE, populate_existing=True)
    assert record.attempts == 1

    assert await otp.verify_code(PHONE, "111111")


async def test_code_locks_after_max_attempts(otp, fixed_codes):
    await otp.send_code(PHONE)
    for _ in range(get_settings().otp_max_attempts):
        with pytest.raises(ValidationError):
            await otp.verify_code(PHONE, "000000")

    with pytest.raises(ValidationError, match="Too many attempts"):
        await otp.verify_code(PHONE, "111111")


async def test_code_is_single_use(otp, fixed_codes):
    await otp.send_code(PHONE)
    await otp.verify_code(PHONE, "111111")

    with pytest.raises(ValidationError, match="already been used"):
        await otp.verify_code(PHONE, "111111")


async def test_concurrent_verifies_consume_the_code_once(otp, session_maker, notifications, fixed_codes):
    await otp.send_code(PHONE)

    async with session_maker() as first, session_maker() as second:
        results = await asyncio.gather(
            OtpService(first, notifications).verify_code(PHONE, "111111"),
            OtpService(second, notifications).verify_code(PHONE, "111111"),
            return_exceptions=True,
        )

    assert results.count(True) == 1
    rejected = [r for r in results if r is not True]
    assert len(rejected) == 1
    assert isinstance(rejected[0], ValidationError)


async def test_concurrent_wrong_guesses_stay_within_the_cap(otp, db, session_maker, notifications, fixed_codes):
    cap = get_settings().otp_max_attempts
    await otp.send_code(PHONE)
    record = await db.get(OtpVerification, PHONE)
    record.attempts = cap - 1
    await db.commit()

    sessions = [session_maker() for _ in range(3)]
    try:
        results = await asyncio.gather(
            *(OtpService(s, notifications).verify_code(PHONE, "000000") for s in sessions),
            return_exceptions=True,
        )
    finally:
        for s in sessions:
            await s.close()

    assert all(isinstance(r, ValidationError) for r in results)
    async with session_maker() as session:
        stored = await session.get(OtpVerification, PHONE)
        assert stored.attempts == cap

    with pytest.raises(ValidationError, match="Too many attempts"):
        await otp.verify_code(PHONE, "111111")


async def test_new_code_replaces_old(otp, fixed_codes):
    await otp.send_code(PHONE)
    await otp.send_code(PHONE)

    with pytest.raises(ValidationError):
        await otp.verify_code(PHONE, "111111")
    assert await otp.verify_code(PHONE, "222222")


async def test_expired_code_is_removed(otp, db, fixed_codes):
    await otp.send_code(PHONE)
    record = await db.get(OtpVerification, PHONE)
    record.expires_at = utcnow() - timedelta(seconds=1)
    await db.commit()

    with pytest.raises(ValidationError, match="expired"):
        await otp.verify_code(PHONE, "111111")
    assert (await db.execute(select(OtpVerification))).scalars().all() == []


async def test_unknown_phone(otp):
    with pytest.raises(ValidationError):
        await otp.verify_code("+15559998888", "123456")


async def test_cleanup_removes_expired_and_used(otp, db, fixed_codes):
    await otp.send_code("+15550000001")
    await otp.send_code("+15550000002")
    await otp.send_code("+15550000003")
    await otp.verify_code("+15550000002", "222222")

    stale = await db.get(OtpVerification, "+15550000003")
    stale.expires_at = utcnow() - timedelta(minutes=1)
    await db.commit()

    assert await otp.cleanup_expired() == 2
    remaining = (await db.execute(select(OtpVerification.phone))).scalars().all()
    assert remaining == ["+15550000001"]
