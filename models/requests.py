"""Request/response models for the HTTP API."""

from __future__ import annotations

from pydantic import Field

from models.base import CamelModel
from models.chat import Message


class ChatMessageRequest(CamelModel):
    """POST /api/chat/{user_id}/messages/stream"""

    message: str = Field(..., min_length=1, max_length=4000)


class LessonStartRequest(CamelModel):
    """POST /api/chat/{user_id}/lesson/stream

    Either a free-form ``topic`` (steering text) or the id of a curated
    lesson whose instruction should be injected.  ``title`` names the
    lesson in the learning history (curated lessons use their own title).
    """

    topic: str | None = None
    lesson_id: str | None = None
    title: str | None = None


class NextLessonRequest(CamelModel):
    """POST /api/lessons/next

    With ``userId`` set, empty ``historyTitles`` / ``memoryFacts`` are
    filled from the learner's stored learning history and facts.
    """

    user_id: str | None = None
    history_titles: list[str] = Field(default_factory=list)
    memory_facts: list[str] = Field(default_factory=list)


class FinishSessionRequest(CamelModel):
    """POST /api/chat/{user_id}/session/finish"""

    user_name: str = Field(default="друг", max_length=100)
    level: int = Field(default=1, ge=1)
    share: bool = False


class ChatHistoryResponse(CamelModel):
    user_id: str
    messages: list[Message]
    total_xp: int = 0


class TranslationResponse(CamelModel):
    message_id: str
    translation: str
