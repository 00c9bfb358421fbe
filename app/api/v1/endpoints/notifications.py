"""Device token registration endpoints."""

from fastapi import APIRouter, Body, Header, Query, status
from fastapi.exceptions import RequestValidationError

from app.core.exceptions import BadRequestException
from app.dependencies import Registry
from app.schemas.notifications import DeviceTokenRegister, DeviceTokenRevoke, OkResponse

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.post(
    "/device-token",
    response_model=OkResponse,
    status_code=status.HTTP_200_OK,
    summary="Register device token",
)
async def register_device_token(
    token_data: DeviceTokenRegister,
    registry: Registry,
    x_user_id: str | None = Header(default=None, description="Owner when absent from the body"),
) -> OkResponse:
    """
    Register or refresh a device token for a user.

    This endpoint should be called:
    - On every app launch after the push permission is granted
    - When the provider rotates the token

    Registration is written synchronously; it is low volume and idempotent.

    Args:
        token_data: Token, token type, platform and device metadata
        registry: Token registry
        x_user_id: User ID header, used when the body carries none

    Returns:
        Acknowledgement
    """
    user_id = token_data.user_id or x_user_id
    if not user_id:
        raise RequestValidationError(
            [
                {
                    "type": "missing",
                    "loc": ("body", "userId"),
                    "msg": "Field required",
                    "input": None,
                }
            ]
        )

    await registry.upsert(token_data.to_record(user_id))
    return OkResponse()


@router.delete(
    "/device-token",
    response_model=OkResponse,
    status_code=status.HTTP_200_OK,
    summary="Revoke device token",
)
async def revoke_device_token(
    registry: Registry,
    token_data: DeviceTokenRevoke | None = Body(default=None),
    device_token: str | None = Query(default=None, alias="deviceToken"),
) -> OkResponse:
    """
    Disable a device token.

    This should be called when:
    - User logs out on a specific device
    - User turns notifications off

    The token may come in the JSON body or the ``deviceToken`` query parameter.

    Raises:
        BadRequestException: If no token was supplied
    """
    token = (token_data.device_token if token_data else None) or device_token
    if not token:
        raise BadRequestException("deviceToken required")

    await registry.disable(token)
    return OkResponse()
