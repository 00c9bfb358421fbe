"""Firebase Cloud Messaging adapter."""

import asyncio

import firebase_admin
import structlog
from firebase_admin import exceptions, messaging

from app.providers.base import DeliveryOutcome, PushProvider
from app.schemas.push import PushPayload, TokenType

logger = structlog.get_logger(__name__)

# registration-token-not-registered and invalid-argument in the Admin SDK's vocabulary
PERMANENT_FCM_ERROR_CODES = frozenset({exceptions.NOT_FOUND, exceptions.INVALID_ARGUMENT})


def classify_fcm_error(error: Exception) -> DeliveryOutcome:
    """
    Map an exception raised by ``messaging.send`` to a delivery outcome.

    Args:
        error: Exception raised by the Admin SDK

    Returns:
        TOKEN_INVALID for permanent token errors, TRANSIENT for everything else
    """
    code = getattr(error, "code", None)
    if isinstance(error, messaging.UnregisteredError) or code in PERMANENT_FCM_ERROR_CODES:
        return DeliveryOutcome.token_invalid(f"fcm:{code or type(error).__name__}")
    return DeliveryOutcome.transient(f"fcm:{code or type(error).__name__}: {error!s}")


def build_fcm_message(token: str, payload: PushPayload) -> messaging.Message:
    """Build a single-token FCM message."""
    return messaging.Message(
        token=token,
        notification=messaging.Notification(
            title=payload.title,
            body=payload.body,
        ),
        data=dict(payload.data),
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(
                sound="default",
                channel_id="default",
            ),
        ),
    )


class FcmProvider(PushProvider):
    """Sends notifications through the Firebase Admin SDK."""

    token_type = TokenType.FCM

    def __init__(self, app: firebase_admin.App):
        """Initialize provider with an initialized Firebase app."""
        self._app = app

    async def send(self, token: str, payload: PushPayload) -> DeliveryOutcome:
        """
        Send a notification to one FCM registration token.

        Args:
            token: FCM registration token
            payload: Notification content

        Returns:
            Classified delivery outcome
        """
        message = build_fcm_message(token, payload)
        try:
            # The Admin SDK is blocking
            message_id = await asyncio.to_thread(messaging.send, message, app=self._app)
        except exceptions.FirebaseError as e:
            outcome = classify_fcm_error(e)
            logger.warning(
                "fcm_send_failed",
                code=e.code,
                outcome=outcome.status.value,
                error=str(e),
            )
            return outcome

        logger.debug("fcm_message_sent", message_id=message_id)
        return DeliveryOutcome.delivered()
