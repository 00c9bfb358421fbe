"""Durable at-least-once dispatch queue for push jobs, backed by Redis."""

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from uuid import uuid4

import redis.asyncio as redis
import structlog
from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError, WatchError

from app.core.exceptions import InfraError
from app.schemas.push import DeadLetter, PushJob, QueuedJob

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QueueKeys:
    """Redis keys used by one queue."""

    name: str

    @property
    def jobs(self) -> str:
        return f"{self.name}:jobs"

    @property
    def ready(self) -> str:
        return f"{self.name}:ready"

    @property
    def processing(self) -> str:
        return f"{self.name}:processing"

    @property
    def leases(self) -> str:
        return f"{self.name}:leases"

    @property
    def delayed(self) -> str:
        return f"{self.name}:delayed"

    @property
    def dead(self) -> str:
        return f"{self.name}:dead"

    def owner(self, job_id: str) -> str:
        return f"{self.name}:owner:{job_id}"


@contextmanager
def _queue_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        logger.error("push_queue_unavailable", operation=operation, error=str(e))
        raise InfraError("Dispatch queue unavailable") from e


class RedisPushQueue:
    """
    Push job queue with leases, delayed retries and a dead-letter list.

    Layout (all keys prefixed with the queue name):
        jobs        hash job_id -> envelope JSON
        ready       list of job ids; LPUSH to enqueue, pop from the right (FIFO)
        processing  list of claimed job ids
        leases      sorted set job_id -> lease deadline (epoch seconds)
        owner:<id>  claim token of the worker currently holding the job
        delayed     sorted set job_id -> due time for retries
        dead        list of dead-letter JSON documents

    A job id moves between lists with single atomic commands (BLMOVE) or
    WATCH/MULTI transactions, so two workers never hold the same job.
    Every claim gets a fresh token; heartbeat and settle operations only
    apply while the caller's token is still the owner, so a worker whose
    lease was reclaimed cannot touch the next holder's claim.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        name: str = "push-queue",
        lease_timeout: float = 30.0,
    ):
        """Initialize queue with Redis client."""
        self._redis = redis_client
        self._lease_timeout = lease_timeout
        self.keys = QueueKeys(name)

    async def enqueue(self, job: PushJob) -> QueuedJob:
        """
        Durably record a job and make it available to workers.

        Args:
            job: Job to enqueue

        Returns:
            Queue envelope of the new job

        Raises:
            InfraError: If Redis is unavailable
        """
        queued = QueuedJob(job=job)
        with _queue_errors("enqueue"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(self.keys.jobs, queued.job_id, queued.model_dump_json(by_alias=True))
                pipe.lpush(self.keys.ready, queued.job_id)
                await pipe.execute()

        logger.info("push_job_enqueued", job_id=queued.job_id, user_id=job.user_id)
        return queued

    async def claim(self, timeout: float = 1.0) -> QueuedJob | None:
        """
        Claim the oldest ready job, waiting up to ``timeout`` seconds.

        Returns:
            Claimed job carrying its claim token, or None when nothing
            became ready in time
        """
        token = uuid4().hex
        with _queue_errors("claim"):
            job_id = await self._redis.blmove(
                self.keys.ready,
                self.keys.processing,
                timeout,
                src="RIGHT",
                dest="LEFT",
            )
            if job_id is None:
                return None

            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zadd(self.keys.leases, {job_id: time.time() + self._lease_timeout})
                pipe.set(self.keys.owner(job_id), token, nx=True)
                pipe.hget(self.keys.jobs, job_id)
                _, owned, raw = await pipe.execute()

            if not owned:
                # Stalled between BLMOVE and here; the job was reclaimed and re-claimed
                logger.warning("push_job_claim_lost", job_id=job_id, operation="claim")
                return None
            if raw is None:
                # Finished by a worker whose lease had already expired
                await self._release(job_id)
                return None

        return QueuedJob.model_validate_json(raw).model_copy(update={"claim_token": token})

    async def extend_lease(self, queued: QueuedJob) -> bool:
        """
        Push the lease deadline of an in-flight job forward.

        Returns:
            False if the caller no longer owns the job (it was reclaimed)
        """
        owner_key = self.keys.owner(queued.job_id)
        with _queue_errors("extend_lease"):
            async with self._redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(owner_key)
                    if not await self._owns(pipe, queued):
                        return False
                    pipe.multi()
                    pipe.zadd(
                        self.keys.leases,
                        {queued.job_id: time.time() + self._lease_timeout},
                        xx=True,
                    )
                    await pipe.execute()
                    return True
                except WatchError:
                    # Ownership changed while extending
                    return False

    async def complete(self, queued: QueuedJob) -> bool:
        """
        Discard a job that finished.

        Returns:
            False if the caller no longer owned the job; nothing was changed
        """
        with _queue_errors("complete"):
            return await self._settle_owned(
                queued,
                "complete",
                lambda pipe: pipe.hdel(self.keys.jobs, queued.job_id),
            )

    async def retry(self, queued: QueuedJob, delay: float, error: str) -> QueuedJob | None:
        """
        Schedule the next attempt of a job after ``delay`` seconds.

        Args:
            queued: Envelope of the failed attempt
            delay: Seconds to wait before the job becomes ready again
            error: Failure reason of this attempt

        Returns:
            Envelope stored for the next attempt, or None if the caller no
            longer owned the job
        """
        next_job = queued.next_attempt(error)

        def stage(pipe: Pipeline) -> None:
            pipe.hset(self.keys.jobs, queued.job_id, next_job.model_dump_json(by_alias=True))
            pipe.zadd(self.keys.delayed, {queued.job_id: time.time() + delay})

        with _queue_errors("retry"):
            if not await self._settle_owned(queued, "retry", stage):
                return None
        return next_job

    async def dead_letter(self, queued: QueuedJob, error: str) -> DeadLetter | None:
        """
        Move a job that exhausted its retries to the dead-letter list.

        Returns:
            The stored dead letter, or None if the caller no longer owned the job
        """
        letter = DeadLetter(queued=queued, error=error)

        def stage(pipe: Pipeline) -> None:
            pipe.hdel(self.keys.jobs, queued.job_id)
            pipe.lpush(self.keys.dead, letter.model_dump_json(by_alias=True))

        with _queue_errors("dead_letter"):
            if not await self._settle_owned(queued, "dead_letter", stage):
                return None
        return letter

    async def promote_due_retries(self, batch_size: int = 100) -> int:
        """
        Move retries whose delay has elapsed back to the ready list.

        Returns:
            Number of jobs promoted
        """
        now = time.time()
        promoted = 0
        with _queue_errors("promote_due_retries"):
            due = await self._redis.zrangebyscore(
                self.keys.delayed, "-inf", now, start=0, num=batch_size
            )
            for job_id in due:
                if await self._promote(job_id, now):
                    promoted += 1

        if promoted:
            logger.debug("push_retries_promoted", count=promoted)
        return promoted

    async def reclaim_expired_leases(self) -> int:
        """
        Return in-flight jobs of crashed workers to the front of the ready list.

        Reclaiming revokes the previous claim token.

        Returns:
            Number of jobs reclaimed
        """
        reclaimed = 0
        with _queue_errors("reclaim_expired_leases"):
            job_ids = await self._redis.lrange(self.keys.processing, 0, -1)
            if not job_ids:
                return 0

            now = time.time()
            scores = await self._redis.zmscore(self.keys.leases, job_ids)
            for job_id, score in zip(job_ids, scores):
                if score is not None and score > now:
                    continue
                if await self._reclaim(job_id, now):
                    reclaimed += 1

        if reclaimed:
            logger.warning("push_leases_reclaimed", count=reclaimed)
        return reclaimed

    async def dead_letters(self, limit: int = 50) -> list[DeadLetter]:
        """Most recent dead letters, newest first."""
        with _queue_errors("dead_letters"):
            raws = await self._redis.lrange(self.keys.dead, 0, limit - 1)
        return [DeadLetter.model_validate_json(raw) for raw in raws]

    async def replay_dead_letter(self, job_id: str) -> QueuedJob | None:
        """
        Re-enqueue a dead-lettered job as a fresh first attempt.

        Returns:
            New envelope, or None if no dead letter carries ``job_id``
        """
        with _queue_errors("replay_dead_letter"):
            raws = await self._redis.lrange(self.keys.dead, 0, -1)
            for raw in raws:
                letter = DeadLetter.model_validate_json(raw)
                if letter.queued.job_id != job_id:
                    continue
                if await self._redis.lrem(self.keys.dead, 1, raw):
                    replayed = await self.enqueue(letter.queued.job)
                    logger.info(
                        "push_dead_letter_replayed",
                        job_id=job_id,
                        new_job_id=replayed.job_id,
                    )
                    return replayed
        return None

    async def stats(self) -> dict[str, int]:
        """Queue depth per state."""
        with _queue_errors("stats"):
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.llen(self.keys.ready)
                pipe.llen(self.keys.processing)
                pipe.zcard(self.keys.delayed)
                pipe.llen(self.keys.dead)
                ready, processing, delayed, dead = await pipe.execute()

        return {
            "ready": ready,
            "processing": processing,
            "delayed": delayed,
            "dead": dead,
        }

    async def _owns(self, pipe: Pipeline, queued: QueuedJob) -> bool:
        if queued.claim_token is None:
            return False
        return await pipe.get(self.keys.owner(queued.job_id)) == queued.claim_token

    async def _settle_owned(
        self,
        queued: QueuedJob,
        operation: str,
        stage: Callable[[Pipeline], object],
    ) -> bool:
        """Release the claim and apply ``stage`` atomically, only while still the owner."""
        owner_key = self.keys.owner(queued.job_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(owner_key)
                    if not await self._owns(pipe, queued):
                        logger.warning(
                            "push_job_claim_lost",
                            job_id=queued.job_id,
                            operation=operation,
                        )
                        return False
                    pipe.multi()
                    pipe.delete(owner_key)
                    pipe.lrem(self.keys.processing, 0, queued.job_id)
                    pipe.zrem(self.keys.leases, queued.job_id)
                    stage(pipe)
                    await pipe.execute()
                    return True
                except WatchError:
                    # Owner key changed under us; check ownership again
                    continue

    async def _release(self, job_id: str) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lrem(self.keys.processing, 0, job_id)
            pipe.zrem(self.keys.leases, job_id)
            pipe.delete(self.keys.owner(job_id))
            await pipe.execute()

    async def _promote(self, job_id: str, now: float) -> bool:
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(self.keys.delayed)
                score = await pipe.zscore(self.keys.delayed, job_id)
                if score is None or score > now:
                    return False
                pipe.multi()
                pipe.zrem(self.keys.delayed, job_id)
                pipe.lpush(self.keys.ready, job_id)
                await pipe.execute()
                return True
            except WatchError:
                # Another process promoted or rescheduled it
                return False

    async def _reclaim(self, job_id: str, now: float) -> bool:
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(self.keys.leases)
                score = await pipe.zscore(self.keys.leases, job_id)
                if score is None:
                    # Claimed an instant ago and its lease is not written yet;
                    # grant a grace lease so a crash here is still recovered
                    if await pipe.lpos(self.keys.processing, job_id) is None:
                        return False
                    pipe.multi()
                    pipe.zadd(self.keys.leases, {job_id: now + self._lease_timeout}, nx=True)
                    await pipe.execute()
                    return False
                if score > now:
                    return False
                pipe.multi()
                pipe.zrem(self.keys.leases, job_id)
                pipe.lrem(self.keys.processing, 1, job_id)
                pipe.delete(self.keys.owner(job_id))
                pipe.rpush(self.keys.ready, job_id)
                await pipe.execute()
                return True
            except WatchError:
                return False
