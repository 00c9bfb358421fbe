import os
from collections.abc import AsyncGenerator
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

# Required settings must exist before the application is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("FIREBASE_SERVICE_ACCOUNT_JSON", "{}")
os.environ.setdefault("APNS_KEY_PATH", "/nonexistent/AuthKey_TEST.p8")
os.environ.setdefault("APNS_KEY_ID", "TESTKEYID1")
os.environ.setdefault("APNS_TEAM_ID", "TESTTEAM01")
os.environ.setdefault("APNS_BUNDLE_ID", "com.example.app")
os.environ.setdefault("PUSH_WORKER_ENABLED", "false")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.dependencies import get_push_queue, get_token_registry
from app.main import app
from app.models.device_tokens import metadata
from app.schemas.push import DeviceTokenRecord, PushJob, PushPayload, QueuedJob, TokenType
from app.services.push_queue import RedisPushQueue
from app.services.token_registry import TokenRegistry


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def registry(session_factory) -> TokenRegistry:
    """Token registry over the test database."""
    return TokenRegistry(session_factory)


@pytest.fixture
def mock_registry() -> MagicMock:
    """Registry double for endpoint and delivery tests."""
    registry = MagicMock(spec=TokenRegistry)
    registry.upsert = AsyncMock()
    registry.disable = AsyncMock()
    registry.active_tokens_for_user = AsyncMock(return_value=[])
    return registry


@pytest.fixture
def mock_queue() -> MagicMock:
    """Dispatch queue double that accepts every job."""
    queue = MagicMock(spec=RedisPushQueue)

    async def enqueue(job: PushJob) -> QueuedJob:
        return QueuedJob(job=job)

    queue.enqueue = AsyncMock(side_effect=enqueue)
    return queue


@pytest_asyncio.fixture
async def client(mock_registry, mock_queue) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the registry and queue replaced by doubles."""
    app.dependency_overrides[get_token_registry] = lambda: mock_registry
    app.dependency_overrides[get_push_queue] = lambda: mock_queue

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def sample_payload() -> PushPayload:
    return PushPayload(
        title="New like",
        body="Ada liked your profile",
        data={"type": "like", "senderUserId": "u2", "deepLink": "/(tabs)/matches"},
    )


@pytest.fixture
def make_record():
    """Factory for device token records."""

    def _make(
        device_token: str = "token-1",
        token_type: TokenType = TokenType.FCM,
        user_id: str = "u1",
        platform: str = "android",
        updated_at: datetime | None = None,
    ) -> DeviceTokenRecord:
        record = DeviceTokenRecord(
            user_id=user_id,
            device_token=device_token,
            token_type=token_type,
            platform=platform,
        )
        if updated_at is not None:
            record = record.model_copy(update={"updated_at": updated_at})
        return record

    return _make
