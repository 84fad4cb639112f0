"""
Identity Provider Factory

Returns the mock (development) or Supabase (staging/production) principal
store based on ENV_MODE.
"""

import logging
from functools import lru_cache

from restrona.core.config import get_settings
from restrona.services.identity.base import (
    AuthSession,
    BaseIdentityProvider,
    IdentityClaims,
)
from restrona.services.identity.mock import MockIdentityProvider
from restrona.services.identity.supabase import SupabaseIdentityProvider

logger = logging.getLogger(__name__)


@lru_cache()
def get_identity_provider() -> BaseIdentityProvider:
    """Get the configured identity provider."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Identity Provider: Using MockIdentityProvider (development mode)")
        return MockIdentityProvider(
            secret_key=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            token_ttl_seconds=settings.access_token_expire_minutes * 60,
        )
    else:
        logger.info(f"Identity Provider: Using SupabaseIdentityProvider ({settings.env_mode.value} mode)")
        return SupabaseIdentityProvider()


def reset_identity_provider() -> None:
    """Clear the cached provider instance."""
    get_identity_provider.cache_clear()


__all__ = [
    "get_identity_provider",
    "reset_identity_provider",
    "BaseIdentityProvider",
    "AuthSession",
    "IdentityClaims",
    "MockIdentityProvider",
    "SupabaseIdentityProvider",
]
