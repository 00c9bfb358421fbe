"""Background worker that drains the push queue."""

import asyncio

import structlog

from app.config import Settings
from app.core.exceptions import InfraError, TransientDeliveryError
from app.schemas.push import QueuedJob
from app.services.backoff import compute_backoff
from app.services.delivery_service import DeliveryService
from app.services.push_queue import RedisPushQueue

logger = structlog.get_logger(__name__)


class PushWorker:
    """
    Claims jobs, runs delivery, and settles each job as completed,
    retrying or dead-lettered.

    Runs ``concurrency`` claim loops plus one maintenance loop that promotes
    due retries and reclaims jobs whose lease expired.
    """

    def __init__(
        self,
        queue: RedisPushQueue,
        delivery: DeliveryService,
        *,
        max_attempts: int = 5,
        backoff_base: float = 1.0,
        backoff_cap: float = 60.0,
        jitter_ratio: float = 0.1,
        concurrency: int = 1,
        poll_interval: float = 1.0,
        lease_timeout: float = 30.0,
    ):
        """Initialize worker with its queue and delivery service."""
        self._queue = queue
        self._delivery = delivery
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        self._jitter_ratio = jitter_ratio
        self._concurrency = concurrency
        self._poll_interval = poll_interval
        self._heartbeat_interval = lease_timeout / 3
        self._stopping = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @classmethod
    def from_settings(
        cls,
        queue: RedisPushQueue,
        delivery: DeliveryService,
        settings: Settings,
    ) -> "PushWorker":
        """Build a worker tuned by application settings."""
        return cls(
            queue,
            delivery,
            max_attempts=settings.push_max_attempts,
            backoff_base=settings.push_backoff_base_seconds,
            backoff_cap=settings.push_backoff_cap_seconds,
            jitter_ratio=settings.push_backoff_jitter_ratio,
            concurrency=settings.push_worker_concurrency,
            poll_interval=settings.push_worker_poll_interval_seconds,
            lease_timeout=settings.push_lease_timeout_seconds,
        )

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        """Spawn the claim loops and the maintenance loop."""
        if self.running:
            return
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._consume(slot), name=f"push-worker-{slot}")
            for slot in range(self._concurrency)
        ]
        self._tasks.append(asyncio.create_task(self._maintain(), name="push-worker-maintenance"))
        logger.info("push_worker_started", concurrency=self._concurrency)

    async def stop(self) -> None:
        """
        Stop all loops.

        A job cut off mid-delivery stays in the processing list and is
        reclaimed once its lease expires.
        """
        self._stopping.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("push_worker_stopped")

    async def process(self, queued: QueuedJob) -> None:
        """
        Run one delivery attempt and settle the job.

        Args:
            queued: Claimed job
        """
        log = logger.bind(job_id=queued.job_id, user_id=queued.job.user_id, attempt=queued.attempt)
        log.info("push_job_started", title=queued.job.payload.title)

        lease_lost = asyncio.Event()
        heartbeat = asyncio.create_task(self._heartbeat(queued, lease_lost))
        error: str | None = None
        try:
            result = await self._delivery.deliver(queued.job.user_id, queued.job.payload)
        except TransientDeliveryError as e:
            error = str(e)
        except InfraError as e:
            error = f"infra: {e.message}"
        except Exception as e:
            log.error("push_job_raised", error=str(e), exc_info=True)
            error = f"{type(e).__name__}: {e!s}"
        finally:
            heartbeat.cancel()

        if lease_lost.is_set():
            # Reclaimed while delivering; the new holder settles the job
            log.warning("push_job_settle_skipped", error=error)
            return

        try:
            if error is None:
                if await self._queue.complete(queued):
                    log.info("push_job_completed", sent=result.sent, disabled=result.disabled)
            else:
                await self._settle_failure(queued, error)
        except InfraError:
            # Job stays in processing; its lease will expire and it is reclaimed
            log.error("push_job_settle_failed", error=error)

    async def _settle_failure(self, queued: QueuedJob, error: str) -> None:
        if queued.attempt >= self._max_attempts:
            if await self._queue.dead_letter(queued, error) is None:
                return
            logger.error(
                "push_job_dead_lettered",
                job_id=queued.job_id,
                attempts=queued.attempt,
                error=error,
                job=queued.job.model_dump(by_alias=True),
            )
            return

        delay = compute_backoff(
            queued.attempt,
            base=self._backoff_base,
            cap=self._backoff_cap,
            jitter_ratio=self._jitter_ratio,
        )
        if await self._queue.retry(queued, delay, error) is None:
            return
        logger.warning(
            "push_job_retrying",
            job_id=queued.job_id,
            attempt=queued.attempt,
            next_attempt=queued.attempt + 1,
            delay=round(delay, 3),
            error=error,
        )

    async def _consume(self, slot: int) -> None:
        while not self._stopping.is_set():
            try:
                queued = await self._queue.claim(timeout=self._poll_interval)
            except InfraError:
                await asyncio.sleep(self._poll_interval)
                continue
            if queued is None:
                continue
            await self.process(queued)

    async def _maintain(self) -> None:
        while not self._stopping.is_set():
            try:
                await self._queue.promote_due_retries()
                await self._queue.reclaim_expired_leases()
            except InfraError:
                pass  # logged by the queue; try again next tick
            await asyncio.sleep(self._poll_interval)

    async def _heartbeat(self, queued: QueuedJob, lease_lost: asyncio.Event) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                if not await self._queue.extend_lease(queued):
                    logger.warning("push_job_lease_lost", job_id=queued.job_id)
                    lease_lost.set()
                    return
            except InfraError:
                continue
