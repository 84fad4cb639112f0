"""
Identity Provider Abstract Base Class

The principal store: owns credentials and issues/verifies access tokens.
Staff profile data (role, tenant, permissions) lives in the ``users``
table and is joined to a principal by its uid.

Implementations raise domain errors rather than returning flags:
    - AuthorizationError(UNAUTHENTICATED) for bad credentials or tokens
    - ValidationError for rejected input (duplicate email, weak password)
    - PersistenceError when the provider cannot be reached
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


MIN_PASSWORD_LENGTH = 6


@dataclass
class IdentityClaims:
    """Decoded, verified token claims."""
    uid: str
    email: Optional[str] = None
    phone: Optional[str] = None
    expires_at: Optional[int] = None


@dataclass
class AuthSession:
    """Result of a successful sign-in."""
    uid: str
    access_token: str
    expires_in: int
    token_type: str = "bearer"


class BaseIdentityProvider(ABC):
    """Abstract base class for principal stores."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> AuthSession:
        """Exchange email/password credentials for an access token."""
        pass

    @abstractmethod
    async def verify_token(self, token: str) -> IdentityClaims:
        """Verify an access token and return its claims."""
        pass

    @abstractmethod
    async def create_principal(
        self,
        email: str,
        password: str,
        phone: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> str:
        """Create a principal and return its uid."""
        pass

    @abstractmethod
    async def delete_principal(self, uid: str) -> None:
        """Delete a principal; deleting an unknown uid is not an error."""
        pass

    @abstractmethod
    async def update_password(self, uid: str, new_password: str) -> None:
        """Replace a principal's password."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check provider connectivity."""
        pass
