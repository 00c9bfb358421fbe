"""Common contract for push transport adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from app.schemas.push import PushPayload, TokenType


class OutcomeStatus(str, Enum):
    """Normalized result of a single provider send."""

    DELIVERED = "delivered"
    TOKEN_INVALID = "token_invalid"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class DeliveryOutcome:
    """What the provider said about one token."""

    status: OutcomeStatus
    reason: str | None = None

    @classmethod
    def delivered(cls) -> "DeliveryOutcome":
        return cls(OutcomeStatus.DELIVERED)

    @classmethod
    def token_invalid(cls, reason: str) -> "DeliveryOutcome":
        return cls(OutcomeStatus.TOKEN_INVALID, reason)

    @classmethod
    def transient(cls, reason: str) -> "DeliveryOutcome":
        return cls(OutcomeStatus.TRANSIENT, reason)


class PushProvider(ABC):
    """A push transport that sends one notification to one device token.

    Implementations classify provider responses themselves; callers only see
    a ``DeliveryOutcome``.
    """

    token_type: TokenType

    @abstractmethod
    async def send(self, token: str, payload: PushPayload) -> DeliveryOutcome:
        """Send a notification to a single device token."""

    async def close(self) -> None:
        """Release network resources held by the provider."""
