"""Inbound domain event schemas."""

from pydantic import Field

from app.schemas.push import CamelModel


class SocialEvent(CamelModel):
    """Like or match between two users."""

    recipient_user_id: str = Field(..., min_length=1)
    sender_user_id: str = Field(..., min_length=1)
    sender_name: str = Field(..., min_length=1)


class MessageEvent(SocialEvent):
    """New chat message."""

    thread_id: str = Field(..., min_length=1)
    message_preview: str = Field(..., min_length=1)
