"""Custom application exceptions."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.schemas.push import DeliveryResult


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class InfraError(AppException):
    """A backing store (token registry or dispatch queue) is unavailable."""

    def __init__(self, message: str = "Backing store unavailable"):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)


class ProviderConfigurationError(Exception):
    """A push provider could not be constructed from its credentials."""


class TransientDeliveryError(Exception):
    """At least one device failed with a retryable outcome during fan-out.

    Carries the partial result so the worker can log what did go out before
    the whole job is retried.
    """

    def __init__(self, result: "DeliveryResult", reasons: list[str]):
        """Initialize with the partial fan-out result and one reason per failed device."""
        self.result = result
        self.reasons = reasons
        super().__init__(f"transient delivery failure: {'; '.join(reasons)}")
