"""
Conversation context store
Owns every user's context and serializes writes per user
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..config import ContextConfig
from ..exceptions import ContextLockTimeout
from .backends import ContextBackend, InMemoryContextBackend, RedisContextBackend
from .models import ConversationContext

logger = logging.getLogger(__name__)

MAX_QUERY_HISTORY = 5

UPDATABLE_FIELDS = frozenset({
    "session_entities",
    "message_history",
    "tool_state",
    "memory_blocks",
    "last_query",
    "last_sql",
    "last_result",
})


class ContextStore:
    """Per-user conversation context with locking and expiration

    get() never takes the lock and may return a snapshot that is stale by the
    length of a concurrent update. update() holds the user's lock for the
    whole read-modify-write.
    """

    def __init__(
        self,
        backend: Optional[ContextBackend] = None,
        expiration: timedelta = timedelta(minutes=60),
        max_message_history: int = 50,
        memory_retrieval_limit: int = 5,
        lock_timeout: float = 5.0,
        clock: Callable[[], datetime] = datetime.now
    ):
        if max_message_history < 1:
            raise ValueError("max_message_history must be at least 1")

        self.backend = backend or InMemoryContextBackend()
        self.expiration = expiration
        self.max_message_history = max_message_history
        self.memory_retrieval_limit = memory_retrieval_limit
        self.lock_timeout = lock_timeout
        self._clock = clock

    @classmethod
    def from_config(cls, config: ContextConfig) -> "ContextStore":
        if config.backend == "redis":
            backend: ContextBackend = RedisContextBackend.from_url(
                config.redis_url, lock_ttl=config.lock_ttl_seconds
            )
        else:
            backend = InMemoryContextBackend()

        return cls(
            backend=backend,
            expiration=timedelta(minutes=config.expiration_minutes),
            max_message_history=config.max_message_history,
            memory_retrieval_limit=config.memory_retrieval_limit,
            lock_timeout=config.lock_timeout_seconds
        )

    async def get(self, user_id: str) -> ConversationContext:
        """Return a copy of the user's context, creating it on first access"""
        now = self._clock()

        if (context := await self.backend.load(user_id)) is None:
            context = await self.backend.create(ConversationContext.new(user_id, now))
            logger.info(f"Created new context for user {user_id}")

        await self.backend.touch(user_id, now)
        context.updated_at = max(context.updated_at, now)
        return context

    async def update(self, user_id: str, changes: Dict[str, Any]) -> ConversationContext:
        """Merge changes into the user's context under the per-user lock.

        Maps are merged key-wise, histories are appended and trimmed to their
        cap, and scalar fields are replaced. Raises ValueError for unknown
        fields and ContextLockTimeout when the lock cannot be acquired.
        """
        if unknown := set(changes) - UPDATABLE_FIELDS:
            raise ValueError(f"Unknown context fields: {', '.join(sorted(unknown))}")

        async with self.backend.lock(user_id, self.lock_timeout):
            now = self._clock()
            context = await self.backend.load(user_id) or ConversationContext.new(user_id, now)
            self._merge(context, changes, now)
            context.updated_at = max(context.updated_at, now)
            await self.backend.save(context)

        logger.debug(f"Updated context for user {user_id}: {sorted(changes)}")
        return context

    def _merge(self, context: ConversationContext, changes: Dict[str, Any], now: datetime) -> None:
        for name, value in changes.items():
            match name:
                case "session_entities" | "tool_state":
                    if not isinstance(value, dict):
                        raise ValueError(f"{name} must be a mapping")
                    getattr(context, name).update(value)
                case "message_history":
                    context.message_history.extend(self._as_list(name, value))
                    context.message_history = context.message_history[-self.max_message_history:]
                case "memory_blocks":
                    for block in self._as_list(name, value):
                        context.memory_blocks.append(self._stamp_memory_block(block, now))
                case _:
                    setattr(context, name, value)

        if "last_query" in changes:
            context.query_history.insert(0, {
                "query": changes["last_query"],
                "sql": changes.get("last_sql"),
                "timestamp": now.isoformat()
            })
            del context.query_history[MAX_QUERY_HISTORY:]

    @staticmethod
    def _as_list(name: str, value: Any) -> List[Any]:
        if isinstance(value, dict):
            return [value]
        if not isinstance(value, list):
            raise ValueError(f"{name} must be a list")
        return value

    @staticmethod
    def _stamp_memory_block(block: Any, now: datetime) -> Dict[str, Any]:
        if not isinstance(block, dict) or "content" not in block:
            raise ValueError("memory blocks need a 'content' field")
        metadata = dict(block.get("metadata") or {})
        metadata.setdefault("timestamp", now.isoformat())
        return {"content": block["content"], "metadata": metadata}

    async def clear(self, user_id: str) -> None:
        await self.backend.delete(user_id)
        logger.info(f"Cleared context for user {user_id}")

    async def sweep_expired(self) -> int:
        """Delete contexts idle for longer than the expiration window.

        Called by the server's periodic task, never from the request path.
        Returns the number of contexts deleted.
        """
        removed = 0

        for user_id in await self.backend.user_ids():
            try:
                if await self._expire(user_id):
                    removed += 1
            except ContextLockTimeout:
                logger.debug(f"Skipping sweep of busy context {user_id}")
            except Exception as e:
                logger.error(f"Failed to sweep context for user {user_id}: {e}")

        logger.info(f"Context sweep removed {removed} expired contexts")
        return removed

    async def _expire(self, user_id: str) -> bool:
        async with self.backend.lock(user_id, self.lock_timeout):
            context = await self.backend.load(user_id)
            if context is None or self._clock() - context.updated_at <= self.expiration:
                return False
            await self.backend.delete(user_id)
            logger.info(f"Expired context for user {user_id}")
            return True

    async def add_memory_block(
        self,
        user_id: str,
        content: Any,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ConversationContext:
        return await self.update(user_id, {
            "memory_blocks": [{"content": content, "metadata": metadata or {}}]
        })

    async def generate_model_context(self, user_id: str) -> Dict[str, Any]:
        """Assemble the context handed to a model: history, entities, tool state and recent memory"""
        context = await self.get(user_id)
        return {
            "messages": context.message_history,
            "entities": context.session_entities,
            "tool_state": context.tool_state,
            "relevant_memory": context.memory_blocks[-self.memory_retrieval_limit:]
        }

    async def close(self) -> None:
        await self.backend.close()
