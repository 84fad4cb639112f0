"""
Notification Service Abstract Base Class

Defines the interface for delivering SMS messages, used for phone
verification codes. Supports both Mock (development) and Twilio
(staging/production) implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send an SMS message."""
        pass

    async def send_otp(
        self,
        to_phone: str,
        code: str,
        ttl_minutes: int,
        app_name: str = "Restrona POS",
    ) -> NotificationResult:
        """Send a phone verification code."""
        message = (
            f"{code} is your {app_name} verification code. "
            f"It expires in {ttl_minutes} minutes. Do not share it."
        )
        return await self.send_sms(to_phone, message)

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
