"""Database models."""

from app.models.device_tokens import device_tokens

__all__ = [
    "device_tokens",
]
