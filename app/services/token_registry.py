"""Device token registry backed by SQLAlchemy."""

from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import InfraError
from app.models.device_tokens import device_tokens
from app.schemas.push import DeviceTokenRecord, TokenType

logger = structlog.get_logger(__name__)


def token_preview(device_token: str) -> str:
    """Shorten a device token for log output."""
    return f"{device_token[:8]}..." if len(device_token) > 8 else device_token


def _utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(UTC)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class TokenRegistry:
    """Stores one record per (user, device token) pair.

    Every write is last-write-wins on ``updated_at``: a write carrying an
    older timestamp than the stored row leaves the row untouched.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize registry with a session factory."""
        self._session_factory = session_factory

    async def upsert(self, record: DeviceTokenRecord) -> None:
        """
        Register or refresh a device token.

        Always re-enables the token; a device re-asserting its token is proof
        that the token is current. The token type of an existing row is never
        changed; a token value belongs to the transport that issued it.

        Args:
            record: Registration data; its ``updated_at`` is the write timestamp

        Raises:
            InfraError: If the store is unavailable
        """
        timestamp = _utc(record.updated_at)
        values: dict[str, Any] = {
            "platform": record.platform,
            "device_id": record.device_id,
            "device_name": record.device_name,
            "app_version": record.app_version,
            "enabled": True,
            "updated_at": timestamp,
        }

        try:
            async with self._session_factory() as session:
                applied = await self._conditional_update(
                    session, record.user_id, record.device_token, values, timestamp
                )
                if not applied and not await self._exists(
                    session, record.user_id, record.device_token
                ):
                    try:
                        await session.execute(
                            insert(device_tokens).values(
                                user_id=record.user_id,
                                device_token=record.device_token,
                                token_type=record.token_type.value,
                                **values,
                            )
                        )
                        await session.commit()
                        applied = True
                    except IntegrityError:
                        # A concurrent registration inserted the row first
                        await session.rollback()
                        applied = await self._conditional_update(
                            session, record.user_id, record.device_token, values, timestamp
                        )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("device_token_upsert_failed", user_id=record.user_id, error=str(e))
            raise InfraError("Token registry unavailable") from e

        logger.info(
            "device_token_upserted",
            user_id=record.user_id,
            token_type=record.token_type.value,
            token=token_preview(record.device_token),
            applied=applied,
        )

    async def disable(self, device_token: str, *, updated_at: datetime | None = None) -> None:
        """
        Disable a device token for every user that holds it.

        Unknown tokens are a no-op: provider errors may reference tokens that
        were already pruned.

        Args:
            device_token: Token to disable
            updated_at: Write timestamp (defaults to now)

        Raises:
            InfraError: If the store is unavailable
        """
        timestamp = _utc(updated_at)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(device_tokens)
                    .where(
                        device_tokens.c.device_token == device_token,
                        device_tokens.c.updated_at <= timestamp,
                    )
                    .values(enabled=False, updated_at=timestamp)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("device_token_disable_failed", token=token_preview(device_token), error=str(e))
            raise InfraError("Token registry unavailable") from e

        logger.info(
            "device_token_disabled",
            token=token_preview(device_token),
            rows=result.rowcount,
        )

    async def active_tokens_for_user(self, user_id: str) -> list[DeviceTokenRecord]:
        """
        Get all enabled device tokens of a user.

        Args:
            user_id: Owner identifier

        Returns:
            Enabled records; empty when the user has no registered devices

        Raises:
            InfraError: If the store is unavailable
        """
        query = select(device_tokens).where(
            device_tokens.c.user_id == user_id,
            device_tokens.c.enabled == True,  # noqa: E712
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                rows = result.fetchall()
        except SQLAlchemyError as e:
            logger.error("device_token_lookup_failed", user_id=user_id, error=str(e))
            raise InfraError("Token registry unavailable") from e

        return [
            DeviceTokenRecord(
                user_id=row.user_id,
                device_token=row.device_token,
                token_type=TokenType(row.token_type),
                platform=row.platform,
                device_id=row.device_id,
                device_name=row.device_name,
                app_version=row.app_version,
                enabled=row.enabled,
                updated_at=_utc(row.updated_at),
            )
            for row in rows
        ]

    @staticmethod
    async def _conditional_update(
        session: AsyncSession,
        user_id: str,
        device_token: str,
        values: dict[str, Any],
        timestamp: datetime,
    ) -> bool:
        result = await session.execute(
            update(device_tokens)
            .where(
                device_tokens.c.user_id == user_id,
                device_tokens.c.device_token == device_token,
                device_tokens.c.updated_at <= timestamp,
            )
            .values(**values)
        )
        return result.rowcount > 0

    @staticmethod
    async def _exists(session: AsyncSession, user_id: str, device_token: str) -> bool:
        result = await session.execute(
            select(device_tokens.c.id).where(
                device_tokens.c.user_id == user_id,
                device_tokens.c.device_token == device_token,
            )
        )
        return result.first() is not None
