"""Push delivery domain schemas."""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TokenType(str, Enum):
    """Push transport that issued a device token."""

    FCM = "fcm"
    APNS = "apns"


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DeviceTokenRecord(CamelModel):
    """One registration of a device token for a user."""

    user_id: str
    device_token: str
    token_type: TokenType
    platform: str
    device_id: str | None = None
    device_name: str | None = None
    app_version: str | None = None
    enabled: bool = True
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class PushPayload(CamelModel):
    """Provider-agnostic notification content."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    title: str
    body: str
    data: dict[str, str] = Field(default_factory=dict)


class PushJob(CamelModel):
    """Unit of work placed on the dispatch queue."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    user_id: str
    payload: PushPayload


class QueuedJob(CamelModel):
    """Queue envelope around a PushJob.

    Never mutated; a retry stores a copy with the next attempt number.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    job_id: str = Field(default_factory=lambda: uuid4().hex)
    job: PushJob
    attempt: int = 1
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_error: str | None = None
    # Set by the queue on each claim; never stored with the job body
    claim_token: str | None = Field(default=None, exclude=True)

    def next_attempt(self, error: str) -> "QueuedJob":
        """Copy of this envelope for the following attempt."""
        return self.model_copy(
            update={"attempt": self.attempt + 1, "last_error": error, "claim_token": None}
        )


class DeadLetter(CamelModel):
    """A job that exhausted its retry budget."""

    queued: QueuedJob
    error: str
    dead_lettered_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class DeliveryResult(BaseModel):
    """Aggregate of one fan-out to a user's devices."""

    sent: int = 0
    disabled: int = 0
    failed: int = 0
