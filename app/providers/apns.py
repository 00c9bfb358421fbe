"""Apple Push Notification service adapter (HTTP/2 provider API)."""

import time
from pathlib import Path
from typing import Any

import httpx
import structlog
from jose import jwt
from jose.exceptions import JOSEError

from app.config import Settings
from app.core.exceptions import ProviderConfigurationError
from app.providers.base import DeliveryOutcome, OutcomeStatus, PushProvider
from app.schemas.push import PushPayload, TokenType

logger = structlog.get_logger(__name__)

# Apple rejects provider tokens older than an hour
PROVIDER_TOKEN_TTL_SECONDS = 50 * 60

PERMANENT_APNS_400_REASONS = frozenset({"BadDeviceToken"})
PROVIDER_TOKEN_REASONS = frozenset({"ExpiredProviderToken", "InvalidProviderToken"})


def classify_apns_response(status_code: int, reason: str | None) -> DeliveryOutcome:
    """
    Map an APNs HTTP response to a delivery outcome.

    Args:
        status_code: HTTP status returned for the device token
        reason: ``reason`` field of the APNs error body, if any

    Returns:
        DELIVERED on 200, TOKEN_INVALID on 410 or 400 BadDeviceToken,
        TRANSIENT otherwise
    """
    if status_code == 200:
        return DeliveryOutcome.delivered()
    if status_code == 410:
        return DeliveryOutcome.token_invalid(f"apns:410:{reason or 'Unregistered'}")
    if status_code == 400 and reason in PERMANENT_APNS_400_REASONS:
        return DeliveryOutcome.token_invalid(f"apns:400:{reason}")
    return DeliveryOutcome.transient(f"apns:{status_code}:{reason or 'unknown'}")


def build_apns_body(payload: PushPayload) -> dict[str, Any]:
    """Alert notification with the payload data as custom top-level keys."""
    body: dict[str, Any] = {key: value for key, value in payload.data.items() if key != "aps"}
    body["aps"] = {
        "alert": {
            "title": payload.title,
            "body": payload.body,
        },
        "sound": "default",
    }
    return body


class ApnsProvider(PushProvider):
    """Sends notifications straight to APNs using token-based authentication."""

    token_type = TokenType.APNS

    def __init__(
        self,
        *,
        signing_key: str,
        key_id: str,
        team_id: str,
        bundle_id: str,
        host: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the provider and prove the signing key is usable.

        Args:
            signing_key: PEM contents of the .p8 key
            key_id: APNs key identifier
            team_id: Apple developer team identifier
            bundle_id: App bundle id, sent as ``apns-topic``
            host: APNs base URL (production or sandbox)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport override

        Raises:
            ProviderConfigurationError: If the key cannot sign a provider token
        """
        self._signing_key = signing_key
        self._key_id = key_id
        self._team_id = team_id
        self._bundle_id = bundle_id
        self._provider_token: str | None = None
        self._provider_token_issued_at = 0.0

        try:
            self._current_provider_token()
        except JOSEError as e:
            raise ProviderConfigurationError(f"Invalid APNs signing key: {e!s}") from e

        self._client = httpx.AsyncClient(
            base_url=host,
            http2=True,
            timeout=timeout,
            transport=transport,
        )
        logger.info("apns_provider_initialized", host=host, bundle_id=bundle_id)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ApnsProvider":
        """Build the provider from application settings."""
        try:
            signing_key = Path(settings.apns_key_path).read_text()
        except OSError as e:
            raise ProviderConfigurationError(
                f"Cannot read APNs key at {settings.apns_key_path}: {e!s}"
            ) from e

        return cls(
            signing_key=signing_key,
            key_id=settings.apns_key_id,
            team_id=settings.apns_team_id,
            bundle_id=settings.apns_bundle_id,
            host=settings.apns_host,
            timeout=settings.push_send_timeout_seconds,
        )

    def _current_provider_token(self) -> str:
        now = time.time()
        if (
            self._provider_token is None
            or now - self._provider_token_issued_at >= PROVIDER_TOKEN_TTL_SECONDS
        ):
            self._provider_token = jwt.encode(
                {"iss": self._team_id, "iat": int(now)},
                self._signing_key,
                algorithm="ES256",
                headers={"kid": self._key_id},
            )
            self._provider_token_issued_at = now
        return self._provider_token

    async def send(self, token: str, payload: PushPayload) -> DeliveryOutcome:
        """
        Send an alert notification to one APNs device token.

        Args:
            token: APNs device token (hex)
            payload: Notification content

        Returns:
            Classified delivery outcome for this token
        """
        headers = {
            "authorization": f"bearer {self._current_provider_token()}",
            "apns-topic": self._bundle_id,
            "apns-push-type": "alert",
            "apns-priority": "10",
        }
        try:
            response = await self._client.post(
                f"/3/device/{token}",
                json=build_apns_body(payload),
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning("apns_request_failed", error=str(e))
            return DeliveryOutcome.transient(f"apns:network:{type(e).__name__}")

        reason = None
        if response.status_code != 200:
            try:
                reason = response.json().get("reason")
            except ValueError:
                reason = None

        if response.status_code == 403 and reason in PROVIDER_TOKEN_REASONS:
            self._provider_token = None

        outcome = classify_apns_response(response.status_code, reason)
        if outcome.status is not OutcomeStatus.DELIVERED:
            logger.warning(
                "apns_send_failed",
                status_code=response.status_code,
                reason=reason,
                outcome=outcome.status.value,
                apns_id=response.headers.get("apns-id"),
            )
        return outcome

    async def close(self) -> None:
        """Close the HTTP/2 connection pool."""
        await self._client.aclose()
