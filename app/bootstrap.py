"""Composition root for the push delivery pipeline."""

from dataclasses import dataclass

import redis.asyncio as redis
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings
from app.core.firebase import initialize_firebase_app
from app.providers.apns import ApnsProvider
from app.providers.base import PushProvider
from app.providers.fcm import FcmProvider
from app.schemas.push import TokenType
from app.services.delivery_service import DeliveryService
from app.services.push_queue import RedisPushQueue
from app.services.push_worker import PushWorker
from app.services.token_registry import TokenRegistry

logger = structlog.get_logger(__name__)


@dataclass
class PushRuntime:
    """Every collaborator of the pipeline, wired together."""

    registry: TokenRegistry
    queue: RedisPushQueue
    providers: dict[TokenType, PushProvider]
    delivery: DeliveryService
    worker: PushWorker

    async def close(self) -> None:
        """Stop the worker and release provider connections."""
        await self.worker.stop()
        for provider in self.providers.values():
            await provider.close()


def build_providers(settings: Settings) -> dict[TokenType, PushProvider]:
    """
    Construct one provider per token type.

    Raises:
        ProviderConfigurationError: If credentials are missing or invalid
    """
    firebase_app = initialize_firebase_app(settings.firebase_service_account_json)
    return {
        TokenType.FCM: FcmProvider(firebase_app),
        TokenType.APNS: ApnsProvider.from_settings(settings),
    }


def build_push_runtime(
    settings: Settings,
    redis_client: redis.Redis,
    session_factory: async_sessionmaker[AsyncSession],
) -> PushRuntime:
    """Wire registry, queue, providers, delivery and worker."""
    registry = TokenRegistry(session_factory)
    queue = RedisPushQueue(
        redis_client,
        name=settings.push_queue_name,
        lease_timeout=settings.push_lease_timeout_seconds,
    )
    providers = build_providers(settings)
    delivery = DeliveryService(
        registry,
        providers,
        send_timeout=settings.push_send_timeout_seconds,
    )
    worker = PushWorker.from_settings(queue, delivery, settings)
    logger.info("push_runtime_built", providers=[token_type.value for token_type in providers])
    return PushRuntime(
        registry=registry,
        queue=queue,
        providers=providers,
        delivery=delivery,
        worker=worker,
    )
