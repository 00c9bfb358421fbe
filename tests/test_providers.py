"""Tests for the APNs and FCM adapters."""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from firebase_admin import exceptions, messaging
from jose import jwt

from app.core.exceptions import ProviderConfigurationError
from app.core.firebase import initialize_firebase_app
from app.providers.apns import ApnsProvider, build_apns_body, classify_apns_response
from app.providers.base import OutcomeStatus
from app.providers.fcm import FcmProvider, build_fcm_message, classify_fcm_error

APNS_HOST = "https://api.sandbox.push.apple.com"


@pytest.fixture(scope="module")
def signing_key() -> str:
    """Throwaway P-256 key in the .p8 (PKCS#8 PEM) format Apple issues."""
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def make_apns(signing_key: str, handler) -> ApnsProvider:
    return ApnsProvider(
        signing_key=signing_key,
        key_id="KEY1234567",
        team_id="TEAM123456",
        bundle_id="com.example.app",
        host=APNS_HOST,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.parametrize(
    ("status_code", "reason", "expected"),
    [
        (200, None, OutcomeStatus.DELIVERED),
        (410, "Unregistered", OutcomeStatus.TOKEN_INVALID),
        (410, None, OutcomeStatus.TOKEN_INVALID),
        (400, "BadDeviceToken", OutcomeStatus.TOKEN_INVALID),
        (400, "BadTopic", OutcomeStatus.TRANSIENT),
        (403, "ExpiredProviderToken", OutcomeStatus.TRANSIENT),
        (429, "TooManyRequests", OutcomeStatus.TRANSIENT),
        (500, "InternalServerError", OutcomeStatus.TRANSIENT),
        (503, None, OutcomeStatus.TRANSIENT),
    ],
)
def test_classify_apns_response(status_code: int, reason: str | None, expected) -> None:
    assert classify_apns_response(status_code, reason).status is expected


def test_apns_body_carries_data_as_top_level_keys(sample_payload) -> None:
    body = build_apns_body(sample_payload)

    assert body["aps"] == {
        "alert": {"title": "New like", "body": "Ada liked your profile"},
        "sound": "default",
    }
    assert body["type"] == "like"
    assert body["deepLink"] == "/(tabs)/matches"


@pytest.mark.asyncio
async def test_apns_send_success(signing_key, sample_payload) -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, headers={"apns-id": "abc"})

    provider = make_apns(signing_key, handler)
    outcome = await provider.send("a1b2c3", sample_payload)
    await provider.close()

    assert outcome.status is OutcomeStatus.DELIVERED
    request = captured[0]
    assert request.url.path == "/3/device/a1b2c3"
    assert request.headers["apns-topic"] == "com.example.app"
    assert request.headers["apns-push-type"] == "alert"
    assert json.loads(request.content)["aps"]["alert"]["title"] == "New like"

    scheme, token = request.headers["authorization"].split(" ", 1)
    assert scheme == "bearer"
    assert jwt.get_unverified_header(token)["kid"] == "KEY1234567"
    assert jwt.get_unverified_claims(token)["iss"] == "TEAM123456"


@pytest.mark.asyncio
async def test_apns_gone_marks_token_invalid(signing_key, sample_payload) -> None:
    provider = make_apns(
        signing_key, lambda request: httpx.Response(410, json={"reason": "Unregistered"})
    )

    outcome = await provider.send("dead", sample_payload)

    assert outcome.status is OutcomeStatus.TOKEN_INVALID
    assert "Unregistered" in outcome.reason


@pytest.mark.asyncio
async def test_apns_bad_device_token_is_invalid(signing_key, sample_payload) -> None:
    provider = make_apns(
        signing_key, lambda request: httpx.Response(400, json={"reason": "BadDeviceToken"})
    )

    outcome = await provider.send("bad", sample_payload)

    assert outcome.status is OutcomeStatus.TOKEN_INVALID


@pytest.mark.asyncio
async def test_apns_server_error_is_transient(signing_key, sample_payload) -> None:
    provider = make_apns(signing_key, lambda request: httpx.Response(503, text="unavailable"))

    outcome = await provider.send("tok", sample_payload)

    assert outcome.status is OutcomeStatus.TRANSIENT
    assert outcome.reason == "apns:503:unknown"


@pytest.mark.asyncio
async def test_apns_network_error_is_transient(signing_key, sample_payload) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = make_apns(signing_key, handler)

    outcome = await provider.send("tok", sample_payload)

    assert outcome.status is OutcomeStatus.TRANSIENT
    assert outcome.reason == "apns:network:ConnectError"


@pytest.mark.asyncio
async def test_apns_expired_provider_token_forces_resign(signing_key, sample_payload) -> None:
    provider = make_apns(
        signing_key, lambda request: httpx.Response(403, json={"reason": "ExpiredProviderToken"})
    )

    outcome = await provider.send("tok", sample_payload)

    assert outcome.status is OutcomeStatus.TRANSIENT
    assert provider._provider_token is None


def test_apns_rejects_unusable_signing_key() -> None:
    with pytest.raises(ProviderConfigurationError):
        ApnsProvider(
            signing_key="not a key",
            key_id="KEY1234567",
            team_id="TEAM123456",
            bundle_id="com.example.app",
            host=APNS_HOST,
        )


def test_apns_from_settings_requires_readable_key(tmp_path) -> None:
    settings = MagicMock()
    settings.apns_key_path = str(tmp_path / "missing.p8")

    with pytest.raises(ProviderConfigurationError):
        ApnsProvider.from_settings(settings)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (messaging.UnregisteredError("not registered"), OutcomeStatus.TOKEN_INVALID),
        (exceptions.NotFoundError("entity not found"), OutcomeStatus.TOKEN_INVALID),
        (exceptions.InvalidArgumentError("bad token"), OutcomeStatus.TOKEN_INVALID),
        (exceptions.UnavailableError("try later"), OutcomeStatus.TRANSIENT),
        (exceptions.InternalError("boom"), OutcomeStatus.TRANSIENT),
        (messaging.QuotaExceededError("slow down"), OutcomeStatus.TRANSIENT),
    ],
)
def test_classify_fcm_error(error: Exception, expected) -> None:
    assert classify_fcm_error(error).status is expected


def test_fcm_message_is_high_priority(sample_payload) -> None:
    message = build_fcm_message("fcm-token", sample_payload)

    assert message.token == "fcm-token"
    assert message.notification.title == "New like"
    assert message.data == sample_payload.data
    assert message.android.priority == "high"
    assert message.android.notification.sound == "default"


@pytest.mark.asyncio
async def test_fcm_send_success(sample_payload) -> None:
    firebase_app = MagicMock()
    provider = FcmProvider(firebase_app)

    with patch("app.providers.fcm.messaging.send", return_value="projects/p/messages/1") as send:
        outcome = await provider.send("fcm-token", sample_payload)

    assert outcome.status is OutcomeStatus.DELIVERED
    message = send.call_args.args[0]
    assert message.token == "fcm-token"
    assert send.call_args.kwargs["app"] is firebase_app


@pytest.mark.asyncio
async def test_fcm_unregistered_marks_token_invalid(sample_payload) -> None:
    provider = FcmProvider(MagicMock())

    with patch(
        "app.providers.fcm.messaging.send",
        side_effect=messaging.UnregisteredError("Requested entity was not found."),
    ):
        outcome = await provider.send("stale", sample_payload)

    assert outcome.status is OutcomeStatus.TOKEN_INVALID


@pytest.mark.asyncio
async def test_fcm_unavailable_is_transient(sample_payload) -> None:
    provider = FcmProvider(MagicMock())

    with patch(
        "app.providers.fcm.messaging.send",
        side_effect=exceptions.UnavailableError("backend unavailable"),
    ):
        outcome = await provider.send("tok", sample_payload)

    assert outcome.status is OutcomeStatus.TRANSIENT


@pytest.mark.parametrize("service_account", ["not json", "{}"])
def test_firebase_rejects_bad_service_account(service_account: str) -> None:
    with pytest.raises(ProviderConfigurationError):
        initialize_firebase_app(service_account, name="test-bad-credentials")
