"""Tutor repository — durable storage for chat history, facts, feedback, XP,
and finished lessons.

The turn engine treats persistence as a best-effort collaborator: only the
loads at session start are awaited for their result, every write may fail
without affecting the live conversation.  The interface is backend-agnostic,
with an in-memory implementation (single instance, tests) and a Redis one
(multi-worker deployments).
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections import defaultdict

from pydantic import BaseModel, Field

from errors.exceptions import PersistenceError
from models.chat import LearningHistoryItem, Message

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class FeedbackEntry(BaseModel):
    """A piece of user feedback and where it came from."""

    text: str
    origin: str = "manual"  # "chat_auto" when the tutor collected it mid-chat
    created_at: float = Field(default_factory=time.time)


# ── Abstract Interface ───────────────────────────────────────


class TutorRepository(ABC):
    """Abstract repository — implement for different storage backends."""

    @abstractmethod
    async def load_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Message]:
        """Return the most recent *limit* messages, oldest first."""
        ...

    @abstractmethod
    async def load_facts(self, user_id: str) -> list[str]:
        """Return every memory fact known about the user, oldest first."""
        ...

    @abstractmethod
    async def append_message(self, user_id: str, message: Message) -> None:
        ...

    @abstractmethod
    async def append_fact(self, user_id: str, text: str) -> None:
        ...

    @abstractmethod
    async def append_feedback(self, user_id: str, text: str, origin: str) -> None:
        ...

    @abstractmethod
    async def save_translation(self, user_id: str, message_id: str, translation: str) -> None:
        """Attach a translation to a stored message.

        Raises:
            PersistenceError: if the message is unknown.
        """
        ...

    @abstractmethod
    async def add_xp(self, user_id: str, amount: int) -> int:
        """Add experience points and return the new total."""
        ...

    @abstractmethod
    async def get_xp(self, user_id: str) -> int:
        ...

    @abstractmethod
    async def append_learning_history(self, user_id: str, item: LearningHistoryItem) -> None:
        ...

    @abstractmethod
    async def load_learning_titles(self, user_id: str) -> list[str]:
        """Return the titles of finished lessons, oldest first."""
        ...

    async def close(self) -> None:
        """Release backend resources.  No-op by default."""


# ── In-Memory Implementation ────────────────────────────────


class InMemoryTutorRepository(TutorRepository):
    """Process-local repository.  Data is lost on restart."""

    def __init__(self) -> None:
        self._messages: dict[str, list[Message]] = defaultdict(list)
        self._facts: dict[str, list[str]] = defaultdict(list)
        self._feedback: dict[str, list[FeedbackEntry]] = defaultdict(list)
        self._xp: dict[str, int] = defaultdict(int)
        self._learning: dict[str, list[LearningHistoryItem]] = defaultdict(list)

    async def load_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Message]:
        return list(self._messages.get(user_id, [])[-limit:])

    async def load_facts(self, user_id: str) -> list[str]:
        return list(self._facts.get(user_id, []))

    async def append_message(self, user_id: str, message: Message) -> None:
        self._messages[user_id].append(message)

    async def append_fact(self, user_id: str, text: str) -> None:
        self._facts[user_id].append(text)

    async def append_feedback(self, user_id: str, text: str, origin: str) -> None:
        self._feedback[user_id].append(FeedbackEntry(text=text, origin=origin))

    async def save_translation(self, user_id: str, message_id: str, translation: str) -> None:
        messages = self._messages.get(user_id, [])
        for i, message in enumerate(messages):
            if message.id == message_id:
                messages[i] = message.model_copy(update={"translation": translation})
                return
        raise PersistenceError("save_translation", f"message '{message_id}' not found")

    async def add_xp(self, user_id: str, amount: int) -> int:
        self._xp[user_id] += amount
        return self._xp[user_id]

    async def get_xp(self, user_id: str) -> int:
        return self._xp.get(user_id, 0)

    async def append_learning_history(self, user_id: str, item: LearningHistoryItem) -> None:
        self._learning[user_id].append(item)

    async def load_learning_titles(self, user_id: str) -> list[str]:
        return [item.topic_title for item in self._learning.get(user_id, [])]

    def feedback_for(self, user_id: str) -> list[FeedbackEntry]:
        """Stored feedback entries (inspection helper)."""
        return list(self._feedback.get(user_id, []))


# ── Redis Implementation ─────────────────────────────────────


class RedisTutorRepository(TutorRepository):
    """Redis-backed repository.

    Per user: a list of JSON-serialized messages, a list of facts, a list of
    feedback entries, a list of finished lessons, and an integer XP counter.
    """

    _KEY_PREFIX = "lingo:"

    def __init__(self, redis_url: str):
        import redis.asyncio as aioredis

        self._redis = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=10,
            socket_timeout=10,
        )

    def _key(self, user_id: str, kind: str) -> str:
        return f"{self._KEY_PREFIX}{user_id}:{kind}"

    async def load_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Message]:
        raw = await self._redis.lrange(self._key(user_id, "messages"), -limit, -1)
        messages: list[Message] = []
        for item in raw:
            try:
                messages.append(Message.model_validate_json(item))
            except ValueError:
                logger.warning("Skipping undecodable stored message for user=%s", user_id)
        return messages

    async def load_facts(self, user_id: str) -> list[str]:
        return await self._redis.lrange(self._key(user_id, "facts"), 0, -1)

    async def append_message(self, user_id: str, message: Message) -> None:
        await self._redis.rpush(self._key(user_id, "messages"), message.model_dump_json())

    async def append_fact(self, user_id: str, text: str) -> None:
        await self._redis.rpush(self._key(user_id, "facts"), text)

    async def append_feedback(self, user_id: str, text: str, origin: str) -> None:
        entry = FeedbackEntry(text=text, origin=origin)
        await self._redis.rpush(self._key(user_id, "feedback"), entry.model_dump_json())

    async def save_translation(self, user_id: str, message_id: str, translation: str) -> None:
        key = self._key(user_id, "messages")
        raw = await self._redis.lrange(key, 0, -1)
        # Newest first: translations are almost always requested for recent bubbles
        for index in range(len(raw) - 1, -1, -1):
            try:
                data = json.loads(raw[index])
            except json.JSONDecodeError:
                continue
            if data.get("id") == message_id:
                data["translation"] = translation
                await self._redis.lset(key, index, json.dumps(data, ensure_ascii=False))
                return
        raise PersistenceError("save_translation", f"message '{message_id}' not found")

    async def add_xp(self, user_id: str, amount: int) -> int:
        return int(await self._redis.incrby(self._key(user_id, "xp"), amount))

    async def get_xp(self, user_id: str) -> int:
        value = await self._redis.get(self._key(user_id, "xp"))
        return int(value) if value is not None else 0

    async def append_learning_history(self, user_id: str, item: LearningHistoryItem) -> None:
        await self._redis.rpush(self._key(user_id, "learning"), item.model_dump_json())

    async def load_learning_titles(self, user_id: str) -> list[str]:
        raw = await self._redis.lrange(self._key(user_id, "learning"), 0, -1)
        titles: list[str] = []
        for item in raw:
            try:
                titles.append(LearningHistoryItem.model_validate_json(item).topic_title)
            except ValueError:
                logger.warning("Skipping undecodable learning history item for user=%s", user_id)
        return titles

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self._redis.aclose()

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return await self._redis.ping()
        except Exception:
            return False


# ── Module-level Singleton ───────────────────────────────────

_repository: TutorRepository | None = None


def get_repository() -> TutorRepository:
    """Get the singleton repository instance."""
    global _repository
    if _repository is None:
        from config.settings import get_settings

        settings = get_settings()
        if settings.repository_type == "redis" and settings.redis_url:
            _repository = RedisTutorRepository(redis_url=settings.redis_url)
            logger.info("Initialized RedisTutorRepository")
        else:
            _repository = InMemoryTutorRepository()
            logger.info("Initialized InMemoryTutorRepository")
    return _repository
