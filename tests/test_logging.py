"""Tests for request logging."""

import pytest
from httpx import AsyncClient

from app.middleware.logging import redact_device_tokens


@pytest.mark.asyncio
async def test_incoming_request_id_is_echoed(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-ID": "req-42"})

    assert response.headers["x-request-id"] == "req-42"
    assert float(response.headers["x-process-time"]) >= 0


def test_raw_device_tokens_are_shortened() -> None:
    event = redact_device_tokens(None, "info", {"event": "x", "device_token": "0123456789abcdef"})

    assert event["device_token"] == "01234567..."


def test_short_values_are_left_alone() -> None:
    event = redact_device_tokens(None, "info", {"event": "x", "device_token": "abc"})

    assert event["device_token"] == "abc"
