"""
Storage backends for conversation context

A backend stores contexts and hands out a per-user lock. Reads return
independent copies, so callers mutate nothing shared without saving.
"""
import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import LockError

from ..exceptions import ContextLockTimeout
from .models import ConversationContext

logger = logging.getLogger(__name__)


class ContextBackend(ABC):
    """Abstract key-value store for conversation contexts"""

    @abstractmethod
    async def load(self, user_id: str) -> Optional[ConversationContext]:
        pass

    @abstractmethod
    async def create(self, context: ConversationContext) -> ConversationContext:
        """Store context unless one already exists; return whichever is stored"""
        pass

    @abstractmethod
    async def save(self, context: ConversationContext) -> None:
        pass

    @abstractmethod
    async def touch(self, user_id: str, timestamp: datetime) -> None:
        """Refresh updated_at without rewriting the rest of the context"""
        pass

    @abstractmethod
    async def delete(self, user_id: str) -> None:
        pass

    @abstractmethod
    async def user_ids(self) -> List[str]:
        pass

    @abstractmethod
    def lock(self, user_id: str, timeout: float):
        """Async context manager holding the per-user lock.

        Raises ContextLockTimeout when the lock is not acquired within timeout seconds.
        """
        pass

    async def close(self) -> None:
        pass


class InMemoryContextBackend(ContextBackend):
    """Process-local backend with one asyncio.Lock per user

    A user's lock is dropped once the context is gone and no task holds or
    waits on the lock.
    """

    def __init__(self):
        self._contexts: Dict[str, ConversationContext] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def load(self, user_id: str) -> Optional[ConversationContext]:
        if (context := self._contexts.get(user_id)) is None:
            return None
        return copy.deepcopy(context)

    async def create(self, context: ConversationContext) -> ConversationContext:
        stored = self._contexts.setdefault(context.user_id, copy.deepcopy(context))
        return copy.deepcopy(stored)

    async def save(self, context: ConversationContext) -> None:
        self._contexts[context.user_id] = copy.deepcopy(context)

    async def touch(self, user_id: str, timestamp: datetime) -> None:
        if (context := self._contexts.get(user_id)) is not None:
            context.updated_at = max(context.updated_at, timestamp)

    async def delete(self, user_id: str) -> None:
        self._contexts.pop(user_id, None)
        self._prune_lock(user_id)

    async def user_ids(self) -> List[str]:
        return list(self._contexts)

    @asynccontextmanager
    async def lock(self, user_id: str, timeout: float) -> AsyncIterator[None]:
        user_lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(user_lock.acquire(), timeout=timeout)
            except asyncio.TimeoutError as e:
                logger.warning(f"Context lock timeout for user {user_id} after {timeout}s")
                raise ContextLockTimeout(user_id, timeout) from e

            try:
                yield
            finally:
                user_lock.release()
        finally:
            self._lock_users[user_id] -= 1
            self._prune_lock(user_id)

    def _prune_lock(self, user_id: str) -> None:
        # Holders and waiters count as users, so a lock in use is never replaced
        if user_id in self._contexts or self._lock_users.get(user_id, 0) > 0:
            return
        self._locks.pop(user_id, None)
        self._lock_users.pop(user_id, None)


class RedisContextBackend(ContextBackend):
    """Shared backend storing one hash per user in Redis

    The hash carries the serialized context under "data" and the last access
    time under "updated_at", so reads can refresh the timestamp without
    rewriting the context.
    """

    KEY_PREFIX = "querygate:context:"
    LOCK_PREFIX = "locks:"

    def __init__(self, client: aioredis.Redis, lock_ttl: float = 10.0):
        self.client = client
        self.lock_ttl = lock_ttl

    @classmethod
    def from_url(cls, url: str, lock_ttl: float = 10.0) -> "RedisContextBackend":
        return cls(aioredis.from_url(url, decode_responses=True), lock_ttl=lock_ttl)

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    @staticmethod
    def _decode(raw: Dict[str, str]) -> Optional[ConversationContext]:
        if not raw or "data" not in raw:
            return None
        context = ConversationContext.from_dict(json.loads(raw["data"]))
        if updated_at := raw.get("updated_at"):
            context.updated_at = max(context.updated_at, datetime.fromisoformat(updated_at))
        return context

    async def load(self, user_id: str) -> Optional[ConversationContext]:
        return self._decode(await self.client.hgetall(self._key(user_id)))

    async def create(self, context: ConversationContext) -> ConversationContext:
        key = self._key(context.user_id)
        if await self.client.hsetnx(key, "data", json.dumps(context.to_dict())):
            await self.client.hset(key, "updated_at", context.updated_at.isoformat())
            return context

        existing = await self.load(context.user_id)
        return existing if existing is not None else context

    async def save(self, context: ConversationContext) -> None:
        await self.client.hset(self._key(context.user_id), mapping={
            "data": json.dumps(context.to_dict()),
            "updated_at": context.updated_at.isoformat()
        })

    async def touch(self, user_id: str, timestamp: datetime) -> None:
        key = self._key(user_id)
        if await self.client.exists(key):
            await self.client.hset(key, "updated_at", timestamp.isoformat())

    async def delete(self, user_id: str) -> None:
        await self.client.delete(self._key(user_id))

    async def user_ids(self) -> List[str]:
        prefix_length = len(self.KEY_PREFIX)
        return [key[prefix_length:] async for key in self.client.scan_iter(match=f"{self.KEY_PREFIX}*")]

    @asynccontextmanager
    async def lock(self, user_id: str, timeout: float) -> AsyncIterator[None]:
        user_lock = self.client.lock(
            f"{self.LOCK_PREFIX}{user_id}",
            timeout=self.lock_ttl,
            blocking_timeout=timeout
        )
        if not await user_lock.acquire():
            logger.warning(f"Redis context lock timeout for user {user_id} after {timeout}s")
            raise ContextLockTimeout(user_id, timeout)

        try:
            yield
        finally:
            try:
                await user_lock.release()
            except LockError as e:
                # The TTL expired and another writer may now own the lock
                logger.error(f"Failed to release context lock for user {user_id}: {e}")

    async def close(self) -> None:
        await self.client.aclose()
