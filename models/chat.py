"""Chat models — messages, corrections, envelope payloads, and turn events.

Defines the data contracts shared by the turn engine and the HTTP layer:
- ``Message`` / ``Correction``: the finalized, client-visible chat log
- ``Envelope``: what the agent's hidden data block decoded to
- ``TurnState`` / ``TurnUpdate``: progress events yielded while a turn streams
- ``GeneratedLesson``: output schema of the lesson architect
- ``LearningHistoryItem`` / ``SessionSummary``: what finishing a session records
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from models.base import CamelModel


def generate_message_id() -> str:
    """Generate a new message ID, unique per turn."""
    return f"msg-{uuid.uuid4().hex[:12]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Chat log ────────────────────────────────────────────────


class MessageRole(str, Enum):
    USER = "user"
    AGENT = "agent"


class Correction(CamelModel):
    """A grammar correction the agent attached to its reply."""

    original: str
    corrected: str
    explanation: str = ""
    examples: list[str] = Field(default_factory=list)  # zero or one sentence


class Message(CamelModel):
    """A single chat bubble.

    Frozen: a streaming placeholder is replaced by a copy on every update
    (``model_copy(update=...)``), never mutated in place.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_message_id)
    role: MessageRole
    text: str
    created_at: datetime = Field(default_factory=_utcnow)
    correction: Correction | None = None
    translation: str | None = None


# ── Envelope ────────────────────────────────────────────────


class EnvelopeStatus(str, Enum):
    """Outcome of looking for a data block in the agent's reply.

    ``ABSENT`` (the agent sent no block) and ``DECODE_FAILED`` (a block was
    there but unreadable) both yield no structured fields, but are counted
    separately.
    """

    ABSENT = "absent"
    PARSED = "parsed"
    DECODE_FAILED = "decode_failed"


class Envelope(BaseModel):
    """Decoded side-channel payload plus the reply text without the block."""

    clean_text: str
    status: EnvelopeStatus = EnvelopeStatus.ABSENT
    correction: Correction | None = None
    memory: str | None = None
    translation: str | None = None
    feedback: str | None = None


# ── Turn events ─────────────────────────────────────────────


class TurnState(str, Enum):
    """Lifecycle of one turn: submitted → streaming → finalized (or failed)."""

    SUBMITTED = "submitted"
    STREAMING = "streaming"
    FAILED = "failed"
    FINALIZED = "finalized"


class TurnUpdate(CamelModel):
    """Progress event yielded by the orchestrator while a turn runs.

    ``message`` and ``xp`` are only set on the terminal event.
    """

    message_id: str
    state: TurnState
    display_text: str = ""
    message: Message | None = None
    xp: int | None = None

    @property
    def is_final(self) -> bool:
        return self.message is not None


# ── Lesson architect ────────────────────────────────────────


class GeneratedLesson(CamelModel):
    """A procedurally generated next lesson."""

    title: str = Field(description="Short catchy title in Russian (max 3 words)")
    description: str = Field(
        description="One motivating sentence in Russian describing the lesson"
    )
    system_prompt: str = Field(
        description="Hidden instruction for the tutor; must start with 'START_SCENARIO:'"
    )
    icon: str = Field(description="Icon name from the allowed vocabulary")


# ── Session finish ──────────────────────────────────────────


class LearningHistoryItem(CamelModel):
    """A finished lesson, as recorded in the learner's history."""

    topic_title: str
    topic_summary: str = ""
    score: int = 0
    ai_feedback: str = ""
    created_at: datetime = Field(default_factory=_utcnow)


class SessionSummary(CamelModel):
    """Progress report produced when the learner finishes a session."""

    topic_title: str | None = None
    xp: int = 0
    corrections: int = 0
    report: str
    shared: bool = False
