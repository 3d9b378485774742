"""Redis-backed job queue shared by several scheduler processes.

Jobs live in a hash (id -> JSON) and their eligibility times in a sorted
set. A Lua script pops the earliest eligible id in one atomic step, so two
processes never receive the same job at once.

A popped job is not deleted. Its id moves to an in-flight sorted set scored
by the time its lease runs out, and the payload stays in the hash until the
consumer acks it. Every pop first returns expired leases to the schedule,
so a job held by a process that crashed mid-delivery is handed out again.

Requires the 'redis' extra: pip install beacon-webhooks[redis]
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from beacon.models import DeliveryJob

from .base import JobQueue

logger = logging.getLogger(__name__)

# Track if Redis is available (optional dependency)
try:
    import redis.asyncio as aioredis

    REDIS_AVAILABLE = True
except ImportError:
    REDIS_AVAILABLE = False


class RedisJobQueue(JobQueue):
    """Sorted-set job queue scored by eligibility time (epoch seconds)."""

    _POP_SCRIPT = """
    local schedule = KEYS[1]
    local jobs = KEYS[2]
    local inflight = KEYS[3]
    local now = tonumber(ARGV[1])
    local lease = tonumber(ARGV[2])

    local expired = redis.call('ZRANGEBYSCORE', inflight, '-inf', now)
    for _, id in ipairs(expired) do
        redis.call('ZREM', inflight, id)
        redis.call('ZADD', schedule, 'NX', now, id)
    end

    while true do
        local ids = redis.call('ZRANGEBYSCORE', schedule, '-inf', now, 'LIMIT', 0, 1)
        if #ids == 0 then
            return false
        end
        local id = ids[1]
        redis.call('ZREM', schedule, id)
        local payload = redis.call('HGET', jobs, id)
        if payload then
            redis.call('ZADD', inflight, now + lease, id)
            return payload
        end
    end
    """

    # A retry may have re-enqueued the job under the same id; keep its payload then
    _ACK_SCRIPT = """
    local schedule = KEYS[1]
    local jobs = KEYS[2]
    local inflight = KEYS[3]
    local id = ARGV[1]

    redis.call('ZREM', inflight, id)
    if not redis.call('ZSCORE', schedule, id) then
        redis.call('HDEL', jobs, id)
    end
    return true
    """

    def __init__(
        self,
        redis_url: str | None = None,
        key_prefix: str = "beacon:jobs",
        client: Any | None = None,
        visibility_timeout: float = 120.0,
    ) -> None:
        """Initialize the queue.

        Args:
            redis_url: Redis connection URL, used when no client is given.
            key_prefix: Prefix for the schedule, payload and in-flight keys.
            client: Existing redis.asyncio client.
            visibility_timeout: Seconds a popped job stays leased before it is
                handed out again. Must exceed the longest delivery attempt.
        """
        if visibility_timeout <= 0:
            raise ValueError("visibility_timeout must be positive")
        if client is None:
            if not REDIS_AVAILABLE:
                raise ImportError(
                    "Redis is not installed. Install with: pip install beacon-webhooks[redis]"
                )
            if redis_url is None:
                raise ValueError("redis_url or client is required")
            client = aioredis.Redis.from_url(redis_url, decode_responses=True)

        self._redis = client
        self._schedule_key = f"{key_prefix}:schedule"
        self._jobs_key = f"{key_prefix}:payloads"
        self._inflight_key = f"{key_prefix}:inflight"
        self._visibility_timeout = visibility_timeout
        self._pop = self._redis.register_script(self._POP_SCRIPT)
        self._ack = self._redis.register_script(self._ACK_SCRIPT)

    @property
    def _keys(self) -> list[str]:
        return [self._schedule_key, self._jobs_key, self._inflight_key]

    async def enqueue(self, job: DeliveryJob, not_before: datetime) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._jobs_key, job.id, job.model_dump_json())
            pipe.zadd(self._schedule_key, {job.id: not_before.timestamp()})
            await pipe.execute()

    async def dequeue_ready(self, now: datetime) -> DeliveryJob | None:
        payload = await self._pop(
            keys=self._keys,
            args=[now.timestamp(), self._visibility_timeout],
        )
        if not payload:
            return None
        return DeliveryJob.model_validate_json(payload)

    async def ack(self, job: DeliveryJob) -> None:
        await self._ack(keys=self._keys, args=[job.id])

    async def size(self) -> int:
        return int(await self._redis.zcard(self._schedule_key))

    async def close(self) -> None:
        await self._redis.aclose()
