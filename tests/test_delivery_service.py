"""Tests for fan-out delivery across a user's devices."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.exceptions import TransientDeliveryError
from app.providers.base import DeliveryOutcome, PushProvider
from app.schemas.push import TokenType
from app.services.delivery_service import DeliveryService


def make_provider(token_type: TokenType, *outcomes) -> MagicMock:
    provider = MagicMock(spec=PushProvider)
    provider.token_type = token_type
    provider.send = AsyncMock(side_effect=list(outcomes))
    return provider


@pytest.mark.asyncio
async def test_invalid_apns_token_is_disabled_and_fcm_delivered(
    mock_registry, make_record, sample_payload
) -> None:
    mock_registry.active_tokens_for_user.return_value = [
        make_record("apns-dead", TokenType.APNS, platform="ios"),
        make_record("fcm-live", TokenType.FCM),
    ]
    apns = make_provider(TokenType.APNS, DeliveryOutcome.token_invalid("apns:410:Unregistered"))
    fcm = make_provider(TokenType.FCM, DeliveryOutcome.delivered())
    service = DeliveryService(mock_registry, {TokenType.APNS: apns, TokenType.FCM: fcm})

    result = await service.deliver("u1", sample_payload)

    assert result.sent == 1
    assert result.disabled == 1
    assert result.failed == 0
    mock_registry.disable.assert_awaited_once_with("apns-dead")
    apns.send.assert_awaited_once_with("apns-dead", sample_payload)
    fcm.send.assert_awaited_once_with("fcm-live", sample_payload)


@pytest.mark.asyncio
async def test_user_without_tokens_sends_nothing(mock_registry, sample_payload) -> None:
    fcm = make_provider(TokenType.FCM)
    service = DeliveryService(mock_registry, {TokenType.FCM: fcm})

    result = await service.deliver("nobody", sample_payload)

    assert result.sent == 0
    fcm.send.assert_not_called()
    mock_registry.disable.assert_not_called()


@pytest.mark.asyncio
async def test_transient_failure_raises_after_trying_every_token(
    mock_registry, make_record, sample_payload
) -> None:
    mock_registry.active_tokens_for_user.return_value = [
        make_record("fcm-1"),
        make_record("fcm-2"),
    ]
    fcm = make_provider(
        TokenType.FCM,
        DeliveryOutcome.transient("fcm:unavailable"),
        DeliveryOutcome.delivered(),
    )
    service = DeliveryService(mock_registry, {TokenType.FCM: fcm})

    with pytest.raises(TransientDeliveryError) as exc_info:
        await service.deliver("u1", sample_payload)

    assert fcm.send.await_count == 2
    assert exc_info.value.result.sent == 1
    assert exc_info.value.result.failed == 1
    assert exc_info.value.reasons == ["fcm:unavailable"]
    mock_registry.disable.assert_not_called()


@pytest.mark.asyncio
async def test_provider_exception_is_transient_and_never_disables(
    mock_registry, make_record, sample_payload
) -> None:
    mock_registry.active_tokens_for_user.return_value = [make_record("fcm-1")]
    fcm = make_provider(TokenType.FCM)
    fcm.send.side_effect = RuntimeError("socket closed")
    service = DeliveryService(mock_registry, {TokenType.FCM: fcm})

    with pytest.raises(TransientDeliveryError) as exc_info:
        await service.deliver("u1", sample_payload)

    assert "RuntimeError" in exc_info.value.reasons[0]
    mock_registry.disable.assert_not_called()


@pytest.mark.asyncio
async def test_slow_provider_times_out_as_transient(
    mock_registry, make_record, sample_payload
) -> None:
    mock_registry.active_tokens_for_user.return_value = [make_record("fcm-1")]

    async def hang(token, payload):
        await asyncio.sleep(5)

    fcm = make_provider(TokenType.FCM)
    fcm.send.side_effect = hang
    service = DeliveryService(mock_registry, {TokenType.FCM: fcm}, send_timeout=0.05)

    with pytest.raises(TransientDeliveryError) as exc_info:
        await service.deliver("u1", sample_payload)

    assert "timed out" in exc_info.value.reasons[0]
    mock_registry.disable.assert_not_called()


@pytest.mark.asyncio
async def test_token_without_provider_is_transient(
    mock_registry, make_record, sample_payload
) -> None:
    mock_registry.active_tokens_for_user.return_value = [make_record("apns-1", TokenType.APNS)]
    service = DeliveryService(mock_registry, {TokenType.FCM: make_provider(TokenType.FCM)})

    with pytest.raises(TransientDeliveryError):
        await service.deliver("u1", sample_payload)
