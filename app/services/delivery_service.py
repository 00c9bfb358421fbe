"""Fan-out of one notification to every active device of a user."""

import asyncio
from collections.abc import Mapping

import structlog

from app.core.exceptions import TransientDeliveryError
from app.providers.base import DeliveryOutcome, OutcomeStatus, PushProvider
from app.schemas.push import DeliveryResult, DeviceTokenRecord, PushPayload, TokenType
from app.services.token_registry import TokenRegistry, token_preview

logger = structlog.get_logger(__name__)


class DeliveryService:
    """Resolves a user's devices and dispatches to the matching provider.

    Provider-agnostic: adapters classify their own responses and this class
    only reacts to ``DeliveryOutcome``.
    """

    def __init__(
        self,
        registry: TokenRegistry,
        providers: Mapping[TokenType, PushProvider],
        send_timeout: float = 10.0,
    ):
        """Initialize with the registry and one provider per token type."""
        self._registry = registry
        self._providers = dict(providers)
        self._send_timeout = send_timeout

    async def deliver(self, user_id: str, payload: PushPayload) -> DeliveryResult:
        """
        Send a notification to all enabled devices of a user.

        Tokens reported as permanently invalid are disabled and the loop moves
        on. Transient failures do not stop the loop either, but are raised
        once every token has been tried so the whole job gets retried.

        Args:
            user_id: Recipient
            payload: Notification content

        Returns:
            Counts of sent and disabled tokens

        Raises:
            TransientDeliveryError: If any token failed with a retryable outcome
            InfraError: If the token registry is unavailable
        """
        records = await self._registry.active_tokens_for_user(user_id)
        if not records:
            logger.info("no_device_tokens_for_user", user_id=user_id)
            return DeliveryResult(sent=0)

        result = DeliveryResult()
        transient_reasons: list[str] = []

        for record in records:
            outcome = await self._send_one(record, payload)

            if outcome.status is OutcomeStatus.DELIVERED:
                result.sent += 1
            elif outcome.status is OutcomeStatus.TOKEN_INVALID:
                await self._registry.disable(record.device_token)
                result.disabled += 1
                logger.warning(
                    "device_token_invalidated",
                    user_id=user_id,
                    token_type=record.token_type.value,
                    token=token_preview(record.device_token),
                    reason=outcome.reason,
                )
            else:
                result.failed += 1
                transient_reasons.append(outcome.reason or "unknown")

        logger.info(
            "push_fanout_finished",
            user_id=user_id,
            devices=len(records),
            sent=result.sent,
            disabled=result.disabled,
            failed=result.failed,
        )

        if transient_reasons:
            raise TransientDeliveryError(result, transient_reasons)
        return result

    async def _send_one(self, record: DeviceTokenRecord, payload: PushPayload) -> DeliveryOutcome:
        """Send to one token; anything unclassified counts as transient."""
        provider = self._providers.get(record.token_type)
        if provider is None:
            return DeliveryOutcome.transient(f"no provider configured for {record.token_type.value}")

        try:
            return await asyncio.wait_for(
                provider.send(record.device_token, payload),
                timeout=self._send_timeout,
            )
        except TimeoutError:
            return DeliveryOutcome.transient(
                f"{record.token_type.value}: send timed out after {self._send_timeout}s"
            )
        except Exception as e:
            logger.error(
                "push_send_raised",
                token_type=record.token_type.value,
                token=token_preview(record.device_token),
                error=str(e),
                exc_info=True,
            )
            return DeliveryOutcome.transient(f"{record.token_type.value}: {type(e).__name__}: {e!s}")
