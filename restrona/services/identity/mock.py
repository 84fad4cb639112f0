"""
Mock Identity Provider

In-process principal store for development and tests. Credentials are
kept in memory (salted PBKDF2 hashes) and access tokens are HS256 JWTs
signed with ``JWT_SECRET_KEY``.

Principal uids are derived from the email address, so re-creating a
principal after a restart yields the same uid and still matches the
persisted ``users`` row.
"""

import hashlib
import hmac
import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from jose import jwt, JWTError

from restrona.core.errors import AuthorizationError, DenyReason, ValidationError
from restrona.services.identity.base import (
    MIN_PASSWORD_LENGTH,
    AuthSession,
    BaseIdentityProvider,
    IdentityClaims,
)

logger = logging.getLogger(__name__)

UID_NAMESPACE = uuid.UUID("6f1c5c1e-3f0b-4d7e-9a55-2c1b7d0e9a11")
PBKDF2_ROUNDS = 100_000


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ROUNDS)


@dataclass
class _StoredPrincipal:
    uid: str
    email: str
    salt: bytes
    password_hash: bytes
    phone: Optional[str] = None
    display_name: Optional[str] = None


class MockIdentityProvider(BaseIdentityProvider):
    """Mock principal store for development."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", token_ttl_seconds: int = 3600):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.token_ttl_seconds = token_ttl_seconds
        self._principals: dict[str, _StoredPrincipal] = {}
        logger.info(f"MockIdentityProvider initialized (token_ttl={token_ttl_seconds}s)")

    @property
    def provider_name(self) -> str:
        return "mock"

    def _by_email(self, email: str) -> Optional[_StoredPrincipal]:
        email = email.strip().lower()
        for principal in self._principals.values():
            if principal.email == email:
                return principal
        return None

    def issue_token(self, uid: str, email: Optional[str] = None) -> str:
        now = int(time.time())
        claims = {
            "sub": uid,
            "email": email,
            "iat": now,
            "exp": now + self.token_ttl_seconds,
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    async def authenticate(self, email: str, password: str) -> AuthSession:
        principal = self._by_email(email or "")
        if principal is None or not hmac.compare_digest(
            principal.password_hash, _hash_password(password or "", principal.salt)
        ):
            raise AuthorizationError("Invalid email or password", reason=DenyReason.UNAUTHENTICATED)

        logger.info(f"Mock sign-in for {principal.email}")
        return AuthSession(
            uid=principal.uid,
            access_token=self.issue_token(principal.uid, principal.email),
            expires_in=self.token_ttl_seconds,
        )

    async def verify_token(self, token: str) -> IdentityClaims:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.debug(f"Token rejected: {e}")
            raise AuthorizationError("Invalid or expired access token", reason=DenyReason.UNAUTHENTICATED)

        uid = payload.get("sub")
        if not uid or uid not in self._principals:
            raise AuthorizationError("Unknown principal", reason=DenyReason.UNAUTHENTICATED)

        return IdentityClaims(
            uid=uid,
            email=payload.get("email"),
            phone=self._principals[uid].phone,
            expires_at=payload.get("exp"),
        )

    async def create_principal(
        self,
        email: str,
        password: str,
        phone: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> str:
        email = (email or "").strip().lower()
        if not email:
            raise ValidationError("Email is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        if self._by_email(email) is not None:
            raise ValidationError(f"A principal with email {email} already exists")

        uid = uuid.uuid5(UID_NAMESPACE, email).hex
        salt = os.urandom(16)
        self._principals[uid] = _StoredPrincipal(
            uid=uid,
            email=email,
            salt=salt,
            password_hash=_hash_password(password, salt),
            phone=phone,
            display_name=display_name,
        )
        logger.info(f"Mock principal created: {uid} ({email})")
        return uid

    async def delete_principal(self, uid: str) -> None:
        if self._principals.pop(uid, None) is not None:
            logger.info(f"Mock principal deleted: {uid}")

    async def update_password(self, uid: str, new_password: str) -> None:
        principal = self._principals.get(uid)
        if principal is None:
            raise ValidationError(f"Principal {uid} not found in identity provider")
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        principal.salt = os.urandom(16)
        principal.password_hash = _hash_password(new_password, principal.salt)
        logger.info(f"Mock password updated for {uid}")

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
