"""ChatOrchestrator — drives one learner's conversation, turn by turn.

Each turn moves through ``submitted → streaming → finalized``; a backend
failure takes the detour ``streaming → failed → finalized`` and ends with a
fixed apology instead of an error.  Progress is exposed as an async
iterator of :class:`TurnUpdate` events, consumed by a single await-loop.

Only one turn runs at a time: while a turn is in flight, new submissions
are ignored (the iterator yields nothing).  The orchestrator owns its
``SessionState`` exclusively, so nothing here needs a lock.

Side effects on finalization, in order: placeholder replaced with the clean
text, history turns appended, agent message persisted, memory fact and
collected feedback forwarded, XP computed and recorded.  Every persistence
call is best effort.

``finish_session`` closes out a practice session: the active lesson goes to
the learning history and a progress report is produced.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import aclosing
from typing import Any, AsyncIterator

from agents.translator import translate_text
from config.settings import get_settings
from errors.exceptions import BackendError
from models.chat import (
    LearningHistoryItem,
    Message,
    MessageRole,
    SessionSummary,
    TurnState,
    TurnUpdate,
)
from models.errors import classify_stream_error
from services.envelope import parse_envelope
from services.lesson_steering import build_steering_instruction
from services.metrics import MetricsCollector, get_metrics_collector
from services.notifier import (
    AdminNotifier,
    format_feedback_notification,
    format_session_summary,
)
from services.repository import TutorRepository
from services.reward import compute_reward
from services.session_store import SessionState, TutorContext
from services.stream_decoder import StreamAccumulator
from services.tutor_backend import TutorBackend

logger = logging.getLogger(__name__)

WELCOME_MESSAGE_ID = "welcome"
WELCOME_TEXT = (
    "Привет! Я Leo 🦁. Я помогу тебе заговорить на английском.\n\n"
    "Давай определим твой уровень. Ты уже учил английский раньше или начинаем с нуля?"
)
WELCOME_TRANSLATION = (
    "Hi! I am Leo. I will help you speak English. Let's find your level. "
    "Have you studied English before, or are we starting from scratch?"
)
FALLBACK_REPLY = "I'm having a bit of trouble connecting to my brain! 📡 Could you try again?"
FEEDBACK_ORIGIN = "chat_auto"
DEFAULT_LEARNER_NAME = "друг"
LESSON_SUMMARY = "Урок завершен."
LESSON_FEEDBACK = "Great job keeping the conversation going."


def welcome_message() -> Message:
    """Greeting shown when the user has no stored history."""
    return Message(
        id=WELCOME_MESSAGE_ID,
        role=MessageRole.AGENT,
        text=WELCOME_TEXT,
        translation=WELCOME_TRANSLATION,
    )


async def _close_iterator(iterator: AsyncIterator[str]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


class ChatOrchestrator:
    """Turn engine for a single user session.

    Args:
        user_id: Owner of the session.  ``None`` runs an anonymous session
            with no persistence calls at all.
        backend: Language-model collaborator.
        repository: Persistence collaborator (optional).
        notifier: Admin notifier for collected feedback (optional).
        metrics: Metrics collector; defaults to the process-wide one.
    """

    def __init__(
        self,
        user_id: str | None,
        backend: TutorBackend,
        *,
        repository: TutorRepository | None = None,
        notifier: AdminNotifier | None = None,
        metrics: MetricsCollector | None = None,
        history_limit: int | None = None,
        stream_idle_timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self.user_id = user_id
        self.backend = backend
        self.repository = repository
        self.notifier = notifier
        self.metrics = metrics or get_metrics_collector()
        self.history_limit = history_limit or settings.history_limit
        self.stream_idle_timeout = (
            stream_idle_timeout if stream_idle_timeout is not None
            else settings.stream_idle_timeout
        )

        self.session = SessionState(user_id=user_id)
        self.messages: list[Message] = []
        self.turn_state: TurnState | None = None  # None until the first turn
        self.total_xp = 0
        self.last_activity = time.time()

        self._initialized = False
        self._closed = False
        self._turn_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    # ── State ────────────────────────────────────────────────

    @property
    def is_streaming(self) -> bool:
        return self.turn_state in (TurnState.SUBMITTED, TurnState.STREAMING, TurnState.FAILED)

    @property
    def accepts_input(self) -> bool:
        return self._initialized and not self._closed and not self.is_streaming

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get_message(self, message_id: str) -> Message | None:
        return next((m for m in self.messages if m.id == message_id), None)

    # ── Session start ────────────────────────────────────────

    async def initialize(self) -> list[Message]:
        """Load history and memory facts, then seed the session.

        Loads run concurrently; a failed load degrades to empty.  With no
        stored history the welcome message is shown.  Every message,
        welcome included, is replayed into the session turns so the agent
        knows what it already asked.
        """
        if self._initialized:
            return list(self.messages)

        history: list[Message] = []
        facts: list[str] = []
        if self.user_id and self.repository is not None:
            history, facts = await asyncio.gather(self._load_history(), self._load_facts())

        self.messages = history or [welcome_message()]
        for fact in facts:
            self.session.add_memory(fact)
        self.session.replay_messages(self.messages)
        self._initialized = True

        logger.info(
            "Session initialized: user=%s messages=%d facts=%d",
            self.user_id, len(self.messages), len(self.session.memories),
        )
        return list(self.messages)

    async def _load_history(self) -> list[Message]:
        try:
            return await self.repository.load_history(self.user_id, self.history_limit)
        except Exception:
            logger.exception("Failed to load history for user=%s — starting fresh", self.user_id)
            return []

    async def _load_facts(self) -> list[str]:
        try:
            return await self.repository.load_facts(self.user_id)
        except Exception:
            logger.exception("Failed to load memory facts for user=%s", self.user_id)
            return []

    # ── Turns ────────────────────────────────────────────────

    async def stream_turn(self, text: str) -> AsyncIterator[TurnUpdate]:
        """Submit a user message and stream the agent's reply.

        Yields nothing when the session cannot take input (not initialized,
        closed, or a turn is already streaming) or *text* is blank.
        """
        if not text.strip():
            return
        if not self.accepts_input:
            logger.info(
                "Submission ignored for user=%s: turn_state=%s initialized=%s closed=%s",
                self.user_id, self.turn_state, self._initialized, self._closed,
            )
            return

        self.turn_state = TurnState.SUBMITTED
        user_message = Message(role=MessageRole.USER, text=text)
        self.messages.append(user_message)

        async with aclosing(self._run_turn(text, reward_text=text, user_message=user_message)) as updates:
            async for update in updates:
                yield update

    async def stream_lesson(self, topic: str, title: str | None = None) -> AsyncIterator[TurnUpdate]:
        """Inject the steering instruction for *topic* and stream the reply.

        Fires exactly once per topic: a topic that is already active yields
        nothing.  The instruction is not shown as a user bubble, and the
        turn earns no XP.  *title* names the lesson in the learning history
        (defaults to the topic itself).
        """
        topic = topic.strip()
        if not topic or self.session.is_topic_handled(topic):
            return
        if not self.accepts_input:
            logger.info("Lesson start ignored for user=%s: turn_state=%s", self.user_id, self.turn_state)
            return

        self.turn_state = TurnState.SUBMITTED
        self.session.mark_topic_handled(topic, title)
        instruction = build_steering_instruction(topic)
        logger.info("Steering user=%s into lesson topic=%.60r", self.user_id, topic)

        async with aclosing(self._run_turn(instruction, reward_text=None)) as updates:
            async for update in updates:
                yield update

    async def send_message(self, text: str) -> TurnUpdate | None:
        """Run :meth:`stream_turn` to completion and return the final update."""
        last: TurnUpdate | None = None
        async for update in self.stream_turn(text):
            last = update
        return last

    async def start_lesson(self, topic: str, title: str | None = None) -> TurnUpdate | None:
        """Run :meth:`stream_lesson` to completion and return the final update."""
        last: TurnUpdate | None = None
        async for update in self.stream_lesson(topic, title):
            last = update
        return last

    async def _run_turn(
        self,
        prompt: str,
        *,
        reward_text: str | None,
        user_message: Message | None = None,
    ) -> AsyncIterator[TurnUpdate]:
        self._turn_task = asyncio.current_task()
        self.last_activity = time.time()
        started = time.monotonic()
        accumulator = StreamAccumulator()
        placeholder: Message | None = None

        try:
            if user_message is not None:
                await self._persist("append_message", user_message)
                yield TurnUpdate(
                    message_id=user_message.id,
                    state=TurnState.SUBMITTED,
                    display_text=user_message.text,
                )

            context = self.session.build_context()
            placeholder = Message(role=MessageRole.AGENT, text="")
            self.messages.append(placeholder)
            self.turn_state = TurnState.STREAMING
            yield TurnUpdate(message_id=placeholder.id, state=TurnState.STREAMING)

            try:
                async for display in self._consume_stream(context, prompt, accumulator):
                    self._replace_message(placeholder.id, text=display)
                    yield TurnUpdate(
                        message_id=placeholder.id,
                        state=TurnState.STREAMING,
                        display_text=display,
                    )
            except Exception as exc:
                self.turn_state = TurnState.FAILED
                logger.warning(
                    "Turn failed for user=%s after %d fragments — %s",
                    self.user_id, accumulator.fragment_count, classify_stream_error(exc),
                )
                failed = self._replace_message(placeholder.id, text=FALLBACK_REPLY)
                self.metrics.record_turn(state=TurnState.FAILED, latency_ms=_elapsed_ms(started))
                yield TurnUpdate(
                    message_id=placeholder.id,
                    state=TurnState.FAILED,
                    display_text=FALLBACK_REPLY,
                )
                self.turn_state = TurnState.FINALIZED
                yield TurnUpdate(
                    message_id=placeholder.id,
                    state=TurnState.FINALIZED,
                    display_text=FALLBACK_REPLY,
                    message=failed,
                    xp=0,
                )
                return

            final, xp = await self._finalize(placeholder.id, prompt, accumulator, reward_text)
            self.metrics.record_turn(state=TurnState.FINALIZED, latency_ms=_elapsed_ms(started), xp=xp)
            self.turn_state = TurnState.FINALIZED
            yield TurnUpdate(
                message_id=placeholder.id,
                state=TurnState.FINALIZED,
                display_text=final.text,
                message=final,
                xp=xp,
            )
        finally:
            self._turn_task = None
            self.last_activity = time.time()
            if self.turn_state is not TurnState.FINALIZED:
                # Cancelled or abandoned by the consumer mid-turn
                if placeholder is not None and self.turn_state is TurnState.STREAMING:
                    self._replace_message(
                        placeholder.id, text=accumulator.display_text or FALLBACK_REPLY
                    )
                self.turn_state = TurnState.FINALIZED
                logger.info("Turn abandoned for user=%s", self.user_id)

    async def _consume_stream(
        self,
        context: TutorContext,
        prompt: str,
        accumulator: StreamAccumulator,
    ) -> AsyncIterator[str]:
        """Yield the display text after every non-empty fragment.

        Raises ``TimeoutError`` when no fragment arrives within
        ``stream_idle_timeout`` seconds.
        """
        stream = self.backend.stream(context.system_instruction, context.turns, prompt)
        iterator = aiter(stream)
        timeout = self.stream_idle_timeout if self.stream_idle_timeout > 0 else None
        try:
            while True:
                async with asyncio.timeout(timeout):
                    fragment = await anext(iterator, None)
                if fragment is None:
                    return
                if fragment:
                    yield accumulator.feed(fragment)
        finally:
            await _close_iterator(iterator)

    async def _finalize(
        self,
        message_id: str,
        prompt: str,
        accumulator: StreamAccumulator,
        reward_text: str | None,
    ) -> tuple[Message, int]:
        envelope = parse_envelope(accumulator.buffer)
        self.metrics.record_envelope(envelope)

        final = self._replace_message(
            message_id,
            text=envelope.clean_text,
            correction=envelope.correction,
            translation=envelope.translation,
        )
        self.session.append_turn("user", prompt)
        self.session.append_turn("assistant", envelope.clean_text)
        await self._persist("append_message", final)

        if reward_text is None:
            return final, 0

        if envelope.memory and self.session.add_memory(envelope.memory):
            await self._persist("append_fact", envelope.memory)
        if envelope.feedback and self.user_id:
            await self._persist("append_feedback", envelope.feedback, FEEDBACK_ORIGIN)
            self._spawn(self._notify_feedback(envelope.feedback))

        xp = compute_reward(reward_text, envelope.correction is not None)
        self.total_xp += xp
        self.session.record_progress(xp, envelope.correction is not None)
        await self._persist("add_xp", xp)

        logger.info(
            "Turn finalized: user=%s envelope=%s correction=%s xp=%d",
            self.user_id, envelope.status.value, envelope.correction is not None, xp,
        )
        return final, xp

    # ── Translation ──────────────────────────────────────────

    async def translate_message(self, message_id: str) -> str | None:
        """Return a message's translation, generating and storing it if missing.

        Returns None for unknown messages or when translation fails.
        """
        message = self.get_message(message_id)
        if message is None:
            return None
        if message.translation:
            return message.translation

        try:
            translation = await translate_text(self.backend, message.text)
        except BackendError as exc:
            logger.warning("Translation failed for message=%s: %s", message_id, exc)
            return None

        self._replace_message(message_id, translation=translation)
        await self._persist("save_translation", message_id, translation)
        return translation

    # ── Session finish ───────────────────────────────────────

    async def finish_session(
        self,
        *,
        user_name: str = DEFAULT_LEARNER_NAME,
        level: int = 1,
        share: bool = False,
    ) -> SessionSummary | None:
        """Close out the current practice session and report progress.

        The active lesson, if any, is recorded in the learning history with
        the session XP as its score.  With *share*, the report is sent to the
        learner's Telegram chat.  The tally and the active lesson are reset
        afterwards, so the lesson can be started again.

        Returns None while a turn is streaming.
        """
        if self.is_streaming:
            logger.info("Session finish ignored for user=%s: turn in flight", self.user_id)
            return None

        state = self.session
        report = format_session_summary(user_name, level, state.session_xp, state.corrections)
        if state.topic_title:
            await self._persist(
                "append_learning_history",
                LearningHistoryItem(
                    topic_title=state.topic_title,
                    topic_summary=LESSON_SUMMARY,
                    score=state.session_xp,
                    ai_feedback=LESSON_FEEDBACK,
                ),
            )

        shared = False
        if share and self.notifier is not None and self.user_id:
            try:
                shared = await self.notifier.send_message(self.user_id, report)
            except Exception:
                logger.exception("Session report delivery failed for user=%s", self.user_id)

        summary = SessionSummary(
            topic_title=state.topic_title,
            xp=state.session_xp,
            corrections=state.corrections,
            report=report,
            shared=shared,
        )
        state.reset_progress()
        self.last_activity = time.time()

        logger.info(
            "Session finished: user=%s topic=%.60r xp=%d corrections=%d shared=%s",
            self.user_id, summary.topic_title, summary.xp, summary.corrections, shared,
        )
        return summary

    # ── Teardown ─────────────────────────────────────────────

    async def close(self) -> None:
        """Stop taking input and cancel in-flight work.

        Cancels the task consuming the current turn (its placeholder is
        finalized with whatever text arrived) and any pending admin
        notifications.
        """
        self._closed = True
        task = self._turn_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            logger.info("Cancelling in-flight turn for user=%s", self.user_id)
            task.cancel()

        pending = list(self._background)
        for background in pending:
            background.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ── Helpers ──────────────────────────────────────────────

    def _replace_message(self, message_id: str, **changes: Any) -> Message:
        for i, message in enumerate(self.messages):
            if message.id == message_id:
                updated = message.model_copy(update=changes)
                self.messages[i] = updated
                return updated
        raise KeyError(message_id)

    async def _persist(self, operation: str, *args: Any) -> None:
        """Call ``repository.<operation>(user_id, *args)``; failures are logged only."""
        if self.repository is None or not self.user_id:
            return
        try:
            await getattr(self.repository, operation)(self.user_id, *args)
        except Exception:
            self.metrics.increment("persistence.failed")
            logger.exception(
                "Persistence '%s' failed for user=%s — conversation continues",
                operation, self.user_id,
            )

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _notify_feedback(self, feedback: str) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify_admin(format_feedback_notification(feedback))
        except Exception:
            logger.exception("Admin notification failed for user=%s", self.user_id)


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000
