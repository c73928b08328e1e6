"""Session store — in-memory history and memory facts for one learner.

``SessionState`` is owned by exactly one orchestrator and mutated only from
its turn loop, so it carries no locking.  It records what the backend needs
to see on the next turn (ordered turns, memory facts), which lesson topic
already had its steering prompt injected, and the progress tally reported
when the session is finished.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    TextPart,
    UserPromptPart,
)

from config.prompts.tutor import build_tutor_prompt
from models.chat import Message, MessageRole

# Tutor replies are short; this only guards against pasted essays.
MAX_TURN_CHARS = 6000


class HistoryTurn(BaseModel):
    """A single turn as the backend sees it."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: float = Field(default_factory=time.time)


@dataclass(frozen=True)
class TutorContext:
    """Everything sent to the backend besides the new user text."""

    system_instruction: str
    turns: list[HistoryTurn] = field(default_factory=list)


class SessionState(BaseModel):
    """Per-user session state: history turns, memory facts, active topic.

    ``session_xp`` and ``corrections`` tally progress since the last
    finished session; ``topic_title`` names the active lesson for the
    learning history.
    """

    user_id: str | None = None
    turns: list[HistoryTurn] = Field(default_factory=list)
    memories: list[str] = Field(default_factory=list)
    active_topic: str | None = None
    topic_title: str | None = None
    session_xp: int = 0
    corrections: int = 0
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    def append_turn(self, role: Literal["user", "assistant"], content: str) -> None:
        """Record a turn in arrival order."""
        self.turns.append(HistoryTurn(role=role, content=content[:MAX_TURN_CHARS]))
        self.updated_at = time.time()

    def replay_messages(self, messages: list[Message]) -> None:
        """Seed turns from a loaded chat log (oldest first)."""
        for message in messages:
            role = "assistant" if message.role == MessageRole.AGENT else "user"
            self.append_turn(role, message.text)

    def add_memory(self, fact: str) -> bool:
        """Remember a new fact.  Returns False for blanks and duplicates."""
        fact = fact.strip()
        if not fact or fact in self.memories:
            return False
        self.memories.append(fact)
        self.updated_at = time.time()
        return True

    def build_context(self, memories: list[str] | None = None) -> TutorContext:
        """Return the ordered turns plus a freshly built system instruction.

        The instruction is never cached: it is rebuilt from the current
        memory set on every call so long-lived sessions see new facts.
        """
        facts = self.memories if memories is None else memories
        return TutorContext(
            system_instruction=build_tutor_prompt(facts),
            turns=list(self.turns),
        )

    def mark_topic_handled(self, topic_key: str, title: str | None = None) -> None:
        self.active_topic = topic_key
        self.topic_title = title or topic_key
        self.updated_at = time.time()

    def is_topic_handled(self, topic_key: str) -> bool:
        return self.active_topic == topic_key

    def record_progress(self, xp: int, corrected: bool) -> None:
        """Add a finished turn's XP and correction to the running session tally."""
        self.session_xp += xp
        if corrected:
            self.corrections += 1
        self.updated_at = time.time()

    def reset_progress(self) -> None:
        """Start a fresh tally and forget the active lesson."""
        self.session_xp = 0
        self.corrections = 0
        self.active_topic = None
        self.topic_title = None
        self.updated_at = time.time()


def turns_to_model_messages(turns: list[HistoryTurn]) -> list[ModelMessage]:
    """Convert history turns into PydanticAI ``ModelMessage`` objects.

    Gives the backend structured user/assistant roles for
    ``agent.run_stream(message_history=...)`` instead of a flattened
    transcript.  Consecutive turns with the same role (a user message whose
    reply failed, followed by a retry) are merged into one message so roles
    keep alternating.
    """
    groups: list[tuple[str, list[str]]] = []
    for turn in turns:
        if groups and groups[-1][0] == turn.role:
            groups[-1][1].append(turn.content)
        else:
            groups.append((turn.role, [turn.content]))

    messages: list[ModelMessage] = []
    for role, contents in groups:
        if role == "user":
            messages.append(
                ModelRequest(parts=[UserPromptPart(content=c) for c in contents])
            )
        else:
            messages.append(ModelResponse(parts=[TextPart(content=c) for c in contents]))
    return messages
