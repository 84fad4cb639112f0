"""
Supabase Identity Provider

Production principal store backed by Supabase Auth. Sign-in uses the
password grant; user management goes through the service-role admin API.
"""

import logging
from typing import Any, Optional

from supabase import create_client, Client

from restrona.core.config import get_settings
from restrona.core.errors import AuthorizationError, DenyReason, PersistenceError, ValidationError
from restrona.services.identity.base import (
    MIN_PASSWORD_LENGTH,
    AuthSession,
    BaseIdentityProvider,
    IdentityClaims,
)

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class SupabaseIdentityProvider(BaseIdentityProvider):
    """Principal store using Supabase Auth."""

    def __init__(self, client: Optional[Client] = None):
        settings = get_settings()

        if client is None:
            if not settings.supabase_url or not settings.supabase_service_key:
                raise ValueError(
                    "SUPABASE_URL and SUPABASE_SERVICE_KEY are required outside development. "
                    "Set them in your .env file or environment variables."
                )
            client = create_client(settings.supabase_url, settings.supabase_service_key)

        self.client = client
        logger.info("SupabaseIdentityProvider initialized")

    @property
    def provider_name(self) -> str:
        return "supabase"

    async def authenticate(self, email: str, password: str) -> AuthSession:
        try:
            response = self.client.auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        except Exception as e:
            logger.warning(f"Supabase sign-in failed for {email}: {e}")
            raise AuthorizationError("Invalid email or password", reason=DenyReason.UNAUTHENTICATED)

        if not response or not response.user or not response.session:
            raise AuthorizationError("Invalid email or password", reason=DenyReason.UNAUTHENTICATED)

        session = response.session
        return AuthSession(
            uid=response.user.id,
            access_token=session.access_token,
            expires_in=getattr(session, "expires_in", 3600) or 3600,
        )

    async def verify_token(self, token: str) -> IdentityClaims:
        try:
            response = self.client.auth.get_user(token)
        except Exception as e:
            logger.warning(f"Supabase token verification failed: {e}")
            raise AuthorizationError("Invalid or expired access token", reason=DenyReason.UNAUTHENTICATED)

        if not response or not response.user:
            raise AuthorizationError("Invalid or expired access token", reason=DenyReason.UNAUTHENTICATED)

        user = response.user
        return IdentityClaims(uid=user.id, email=user.email, phone=_field(user, "phone"))

    async def create_principal(
        self,
        email: str,
        password: str,
        phone: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> str:
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

        attributes = {
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": {"name": display_name or email.split("@")[0]},
        }
        if phone:
            attributes["phone"] = phone

        try:
            response = self.client.auth.admin.create_user(attributes)
        except Exception as e:
            message = str(e)
            logger.error(f"Supabase create_user failed for {email}: {message}")
            if "already" in message.lower() or "registered" in message.lower():
                raise ValidationError(f"A principal with email {email} already exists")
            raise PersistenceError("Failed to create user account")

        if not response or not response.user:
            raise PersistenceError("Failed to create user account")

        logger.info(f"Supabase principal created: {response.user.id} ({email})")
        return response.user.id

    async def delete_principal(self, uid: str) -> None:
        try:
            self.client.auth.admin.delete_user(uid)
        except Exception as e:
            message = str(e).lower()
            if "not found" in message:
                return
            logger.error(f"Supabase delete_user failed for {uid}: {e}")
            raise PersistenceError("Failed to delete user account")
        logger.info(f"Supabase principal deleted: {uid}")

    async def update_password(self, uid: str, new_password: str) -> None:
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        try:
            self.client.auth.admin.update_user_by_id(uid, {"password": new_password})
        except Exception as e:
            logger.error(f"Supabase password update failed for {uid}: {e}")
            if "not found" in str(e).lower():
                raise ValidationError(f"Principal {uid} not found in identity provider")
            raise PersistenceError("Failed to update password")
        logger.info(f"Supabase password updated for {uid}")

    async def health_check(self) -> bool:
        try:
            self.client.auth.admin.list_users(page=1, per_page=1)
            return True
        except Exception as e:
            logger.error(f"Supabase health check failed: {e}")
            return False
