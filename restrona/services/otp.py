"""
Phone Verification (OTP)

One outstanding code per phone number, stored only as a hash. Codes are
single-use, expire after ``OTP_TTL_MINUTES`` and lock after
``OTP_MAX_ATTEMPTS`` wrong guesses.
"""

import hashlib
import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from restrona.core.config import Settings, get_settings
from restrona.core.errors import PersistenceError, ValidationError
from restrona.database import commit_or_raise
from restrona.models import OtpVerification, User, as_utc, utcnow
from restrona.services.notifications import BaseNotificationService

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?\d{10,15}$")


def normalize_phone(phone: str) -> str:
    """Strip formatting; keep digits and an optional leading +."""
    raw = (phone or "").strip()
    cleaned = re.sub(r"[\s\-().]", "", raw)
    if not PHONE_PATTERN.match(cleaned):
        raise ValidationError(f"Invalid phone number: {phone!r}")
    return cleaned


def hash_code(phone: str, code: str) -> str:
    return hashlib.sha256(f"{phone}:{code}".encode("utf-8")).hexdigest()


@dataclass
class OtpDispatch:
    phone: str
    expires_at: datetime
    code: Optional[str] = None  # only echoed when the deployment allows it


class OtpService:
    def __init__(
        self,
        db: AsyncSession,
        notifications: BaseNotificationService,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.notifications = notifications
        self.settings = settings or get_settings()

    def _generate_code(self) -> str:
        length = self.settings.otp_length
        return str(secrets.randbelow(10 ** length)).zfill(length)

    async def _write(self, statement, action: str):
        try:
            return await self.db.execute(statement)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceError(f"Could not {action}, please retry")

    async def send_code(self, phone: str) -> OtpDispatch:
        """Issue a fresh code for ``phone``, replacing any earlier one."""
        phone = normalize_phone(phone)
        code = self._generate_code()
        now = utcnow()
        expires_at = now + timedelta(minutes=self.settings.otp_ttl_minutes)

        record = await self.db.get(OtpVerification, phone)
        if record is None:
            record = OtpVerification(phone=phone)
            self.db.add(record)
        record.code_hash = hash_code(phone, code)
        record.created_at = now
        record.expires_at = expires_at
        record.is_used = False
        record.attempts = 0
        await commit_or_raise(self.db, "store verification code")

        result = await self.notifications.send_otp(
            phone,
            code,
            ttl_minutes=self.settings.otp_ttl_minutes,
            app_name=self.settings.app_name,
        )
        if not result.success:
            logger.error(f"Verification SMS to {phone} failed: {result.error_message}")
            raise PersistenceError("Could not deliver the verification code, please retry")

        logger.info(f"Verification code sent to {phone} via {result.provider}")
        return OtpDispatch(
            phone=phone,
            expires_at=expires_at,
            code=code if self.settings.expose_otp_code else None,
        )

    async def verify_code(self, phone: str, code: str) -> bool:
        """
        Check a code. Raises ValidationError on any failure; on success the
        code is consumed and matching staff accounts are marked verified.
        """
        phone = normalize_phone(phone)
        record = await self.db.get(OtpVerification, phone, populate_existing=True)
        if record is None:
            raise ValidationError("No verification code was requested for this number")

        if as_utc(record.expires_at) <= utcnow():
            await self.db.delete(record)
            await commit_or_raise(self.db, "remove expired verification code")
            raise ValidationError("Verification code has expired, request a new one")

        if record.is_used:
            raise ValidationError("Verification code has already been used")

        if record.attempts >= self.settings.otp_max_attempts:
            raise ValidationError("Too many attempts, request a new code")

        issued_hash = record.code_hash
        if not hmac.compare_digest(issued_hash, hash_code(phone, (code or "").strip())):
            # Counted in the store so concurrent guesses cannot exceed the cap
            counted = await self._write(
                update(OtpVerification)
                .where(
                    OtpVerification.phone == phone,
                    OtpVerification.code_hash == issued_hash,
                    OtpVerification.attempts < self.settings.otp_max_attempts,
                )
                .values(attempts=OtpVerification.attempts + 1)
                .execution_options(synchronize_session=False),
                "record verification attempt",
            )
            await commit_or_raise(self.db, "record verification attempt")
            if not counted.rowcount:
                raise ValidationError("Too many attempts, request a new code")
            logger.info(f"Wrong verification code for {phone}")
            raise ValidationError("Invalid verification code")

        consumed = await self._write(
            update(OtpVerification)
            .where(
                OtpVerification.phone == phone,
                OtpVerification.code_hash == issued_hash,
                OtpVerification.is_used.is_(False),
                OtpVerification.attempts < self.settings.otp_max_attempts,
            )
            .values(is_used=True)
            .execution_options(synchronize_session=False),
            "consume verification code",
        )
        if not consumed.rowcount:
            await self.db.rollback()
            raise ValidationError("Verification code has already been used")

        await self._write(
            update(User)
            .where(User.phone == phone)
            .values(phone_verified=True, updated_at=utcnow())
            .execution_options(synchronize_session=False),
            "mark phone verified",
        )
        await commit_or_raise(self.db, "confirm verification code")

        logger.info(f"Phone {phone} verified")
        return True

    async def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Delete expired and consumed codes. Returns the number removed."""
        result = await self.db.execute(
            delete(OtpVerification).where(
                or_(OtpVerification.expires_at < (now or utcnow()), OtpVerification.is_used.is_(True))
            )
        )
        await commit_or_raise(self.db, "purge verification codes")
        removed = result.rowcount or 0
        if removed:
            logger.info(f"Purged {removed} verification codes")
        return removed
