"""Session registry — live ChatOrchestrator per user, with idle expiry.

One orchestrator per user id, created and initialized on first use and
closed once idle longer than the TTL.  A session with a turn in flight is
never evicted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from agents.chat_orchestrator import ChatOrchestrator

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[str], ChatOrchestrator]


class SessionRegistry:
    """In-memory map of user id → initialized orchestrator."""

    def __init__(self, factory: OrchestratorFactory, ttl_seconds: int = 1800):
        self._factory = factory
        self._ttl = ttl_seconds
        self._sessions: dict[str, ChatOrchestrator] = {}
        self._lock = asyncio.Lock()

    def _is_expired(self, orchestrator: ChatOrchestrator, now: float) -> bool:
        return (now - orchestrator.last_activity) > self._ttl

    async def get_or_create(self, user_id: str) -> ChatOrchestrator:
        """Return the user's orchestrator, creating and initializing it if needed."""
        async with self._lock:
            orchestrator = self._sessions.get(user_id)
            if orchestrator is not None and not orchestrator.is_closed:
                orchestrator.last_activity = time.time()
                return orchestrator

            orchestrator = self._factory(user_id)
            await orchestrator.initialize()
            self._sessions[user_id] = orchestrator
            logger.info("Session created: user=%s (active=%d)", user_id, len(self._sessions))
            return orchestrator

    def get(self, user_id: str) -> ChatOrchestrator | None:
        return self._sessions.get(user_id)

    async def remove(self, user_id: str) -> None:
        orchestrator = self._sessions.pop(user_id, None)
        if orchestrator is not None:
            await orchestrator.close()

    async def cleanup_expired(self) -> int:
        """Close and drop idle sessions.  Returns count removed."""
        now = time.time()
        expired = [
            uid for uid, o in self._sessions.items()
            if self._is_expired(o, now) and not o.is_streaming
        ]
        for uid in expired:
            await self.remove(uid)
        if expired:
            logger.info("Cleaned up %d idle chat sessions", len(expired))
        return len(expired)

    async def close(self) -> None:
        """Close every session (shutdown)."""
        for uid in list(self._sessions):
            await self.remove(uid)

    @property
    def size(self) -> int:
        return len(self._sessions)


# ── Module-level Singleton ───────────────────────────────────

_registry: SessionRegistry | None = None


def _default_factory(user_id: str) -> ChatOrchestrator:
    from services.notifier import get_notifier
    from services.repository import get_repository
    from services.tutor_backend import get_backend

    return ChatOrchestrator(
        user_id,
        get_backend(),
        repository=get_repository(),
        notifier=get_notifier(),
    )


def get_session_registry() -> SessionRegistry:
    """Get the singleton registry wired to the configured collaborators."""
    global _registry
    if _registry is None:
        from config.settings import get_settings

        _registry = SessionRegistry(_default_factory, ttl_seconds=get_settings().session_ttl)
    return _registry


# ── Background Cleanup Task ──────────────────────────────────


async def periodic_cleanup(interval_seconds: int = 300) -> None:
    """Background task that periodically evicts idle sessions.

    Should be started as an ``asyncio.Task`` in the FastAPI lifespan.
    """
    registry = get_session_registry()
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await registry.cleanup_expired()
        except Exception:
            logger.exception("Session registry cleanup failed")
