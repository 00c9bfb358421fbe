"""Device token registration schemas."""

from pydantic import Field

from app.schemas.push import CamelModel, DeviceTokenRecord, TokenType


class DeviceTokenRegister(CamelModel):
    """Schema for registering a device token.

    ``userId`` may also arrive in the ``x-user-id`` header, so it is optional here.
    """

    user_id: str | None = Field(default=None, min_length=1)
    device_token: str = Field(..., min_length=1, description="Provider-issued push token")
    token_type: TokenType = Field(..., description="Push transport: fcm or apns")
    platform: str = Field(..., min_length=1, description="Client platform, e.g. ios or android")
    device_id: str | None = None
    device_name: str | None = None
    app_version: str | None = None

    def to_record(self, user_id: str) -> DeviceTokenRecord:
        """Build the registry record for the resolved user."""
        return DeviceTokenRecord(
            user_id=user_id,
            device_token=self.device_token,
            token_type=self.token_type,
            platform=self.platform,
            device_id=self.device_id,
            device_name=self.device_name,
            app_version=self.app_version,
        )


class DeviceTokenRevoke(CamelModel):
    """Schema for revoking a device token."""

    device_token: str | None = Field(default=None, min_length=1)


class OkResponse(CamelModel):
    """Acknowledgement body."""

    ok: bool = True
