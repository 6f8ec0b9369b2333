"""Draft storage for in-progress wizard steps.

Drafts are a client-side cache keyed by step. They survive back/forward
navigation without a backend round trip, are never authoritative, and are
discarded as soon as the server confirms the step.

Two stores share one interface:
  - InMemoryDraftStore → tests and single-process use
  - RedisDraftStore    → one hash per user session, shared across workers

DraftDebouncer sits in front of a store and only writes once the payload
has been quiet for the debounce window.
"""

import asyncio
import itertools
import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis

from govready.config import settings
from govready.middleware.exceptions import TransientBackendError
from govready.schemas.onboarding import Draft, Step

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


class DraftStore(ABC):
    """Keyed store: Step → Draft."""

    @abstractmethod
    async def get(self, step: Step) -> Draft | None:
        ...

    @abstractmethod
    async def put(self, step: Step, payload: dict) -> Draft:
        ...

    @abstractmethod
    async def discard(self, step: Step) -> None:
        ...

    @abstractmethod
    async def all(self) -> dict[Step, Draft]:
        ...

    async def prune(self, completed_steps: list[Step]) -> list[Step]:
        """Drop drafts for steps the server reports as completed."""
        drafts = await self.all()
        stale = [step for step in drafts if step in completed_steps]
        for step in stale:
            await self.discard(step)
        if stale:
            logger.debug(f"Pruned drafts for completed steps: {[s.value for s in stale]}")
        return stale


class InMemoryDraftStore(DraftStore):
    def __init__(self):
        self._drafts: dict[Step, Draft] = {}
        self._seq = itertools.count(1)

    async def get(self, step: Step) -> Draft | None:
        return self._drafts.get(step)

    async def put(self, step: Step, payload: dict) -> Draft:
        draft = Draft(step=step, payload=payload, modified=next(self._seq))
        self._drafts[step] = draft
        return draft

    async def discard(self, step: Step) -> None:
        self._drafts.pop(step, None)

    async def all(self) -> dict[Step, Draft]:
        return dict(self._drafts)


class RedisDraftStore(DraftStore):
    """Drafts for one session in a Redis hash.

    Keys:
        drafts:{session_key}      hash  step → {"payload": ..., "modified": n}
        drafts:{session_key}:seq  int   monotonically increasing marker

    Read failures degrade to "no draft" (the server copy is used instead);
    write failures are raised so the caller knows the draft was not kept.
    """

    def __init__(self, client: redis.Redis, session_key: str, ttl: int | None = None):
        self.client = client
        self.key = f"drafts:{session_key}"
        self.seq_key = f"{self.key}:seq"
        self.ttl = ttl if ttl is not None else settings.draft_ttl_seconds

    @staticmethod
    def _decode(step: Step, raw: str | None) -> Draft | None:
        if not raw:
            return None
        try:
            data = json.loads(raw)
            return Draft(step=step, payload=data["payload"], modified=int(data["modified"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable draft for {step.value}: {e}")
            return None

    async def get(self, step: Step) -> Draft | None:
        try:
            raw = await self.client.hget(self.key, step.value)
        except redis.RedisError as e:
            logger.warning(f"Redis error reading draft (falling back to server data): {e}")
            return None
        return self._decode(step, raw)

    async def put(self, step: Step, payload: dict) -> Draft:
        try:
            modified = await self.client.incr(self.seq_key)
            await self.client.hset(
                self.key,
                step.value,
                json.dumps({"payload": payload, "modified": modified}),
            )
            await self.client.expire(self.key, self.ttl)
            await self.client.expire(self.seq_key, self.ttl)
        except redis.RedisError as e:
            logger.warning(f"Redis error saving draft for {step.value}: {e}")
            raise TransientBackendError("Draft storage temporarily unavailable") from e
        return Draft(step=step, payload=payload, modified=int(modified))

    async def discard(self, step: Step) -> None:
        try:
            await self.client.hdel(self.key, step.value)
        except redis.RedisError as e:
            logger.warning(f"Redis error discarding draft for {step.value}: {e}")
            raise TransientBackendError("Draft storage temporarily unavailable") from e

    async def all(self) -> dict[Step, Draft]:
        try:
            raw = await self.client.hgetall(self.key)
        except redis.RedisError as e:
            logger.warning(f"Redis error listing drafts (falling back to server data): {e}")
            return {}
        drafts: dict[Step, Draft] = {}
        for name, value in raw.items():
            step = Step.parse(name)
            if step is None:
                continue
            draft = self._decode(step, value)
            if draft is not None:
                drafts[step] = draft
        return drafts


class DraftDebouncer:
    """Writes a step's draft once the payload has been quiet for ``delay`` seconds.

    Each new payload for a step restarts that step's timer. Payloads equal to
    the last one written are dropped. An immediate submission calls
    ``cancel(step)`` first so a late timer cannot resurrect a cleared draft.
    """

    def __init__(self, store: DraftStore, delay: float | None = None):
        self.store = store
        self.delay = settings.draft_debounce_seconds if delay is None else delay
        self._timers: dict[Step, asyncio.Task] = {}
        self._pending: dict[Step, dict] = {}
        self._last_written: dict[Step, dict] = {}

    def schedule(self, step: Step, payload: dict) -> bool:
        """Queue a write. Returns False when the payload is unchanged."""
        self.cancel(step)
        if step in self._last_written and payload == self._last_written[step]:
            return False
        self._pending[step] = payload
        self._timers[step] = asyncio.create_task(self._write_later(step, payload))
        return True

    async def _write_later(self, step: Step, payload: dict) -> None:
        await asyncio.sleep(self.delay)
        # Past this point cancel() no longer sees the timer
        self._timers.pop(step, None)
        self._pending.pop(step, None)
        try:
            await self.store.put(step, payload)
            self._last_written[step] = payload
        except Exception:
            logger.exception("Debounced draft save failed for %s", step.value)

    def is_pending(self, step: Step) -> bool:
        return step in self._timers

    def cancel(self, step: Step) -> bool:
        """Cancel a pending write. Returns True if one was pending."""
        task = self._timers.pop(step, None)
        self._pending.pop(step, None)
        if task is None:
            return False
        task.cancel()
        return True

    def forget(self, step: Step) -> None:
        """Drop the dedupe memory for a step (its draft was cleared)."""
        self.cancel(step)
        self._last_written.pop(step, None)

    async def flush(self) -> None:
        """Write every pending payload now."""
        pending = dict(self._pending)
        for step in list(self._timers):
            self.cancel(step)
        for step, payload in pending.items():
            await self.store.put(step, payload)
            self._last_written[step] = payload

    async def aclose(self) -> None:
        for step in list(self._timers):
            self.cancel(step)
