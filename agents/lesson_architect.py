"""LessonArchitect — proposes the next procedural lesson.

A stateless, non-streaming structured call.  The caller must always get a
next step, so every failure (backend error, invalid output, empty fields)
collapses into the fixed open-conversation lesson.
"""

from __future__ import annotations

import logging

from config.prompts.architect import (
    DEFAULT_LESSON_ICON,
    LESSON_ICONS,
    build_architect_prompt,
)
from models.chat import GeneratedLesson
from services.lesson_steering import has_steering_marker
from services.tutor_backend import TutorBackend

logger = logging.getLogger(__name__)

SCENARIO_PREFIX = "START_SCENARIO: "


def fallback_lesson() -> GeneratedLesson:
    """The offline lesson: free conversation on any topic."""
    return GeneratedLesson(
        title="Свободная беседа",
        description="Лео готов обсудить любую тему.",
        system_prompt="Just chat with the user freely. Ask them what they want to talk about.",
        icon="MessageCircle",
    )


def _normalize(lesson: GeneratedLesson) -> GeneratedLesson | None:
    """Enforce the closed icon vocabulary and the scenario marker.

    Returns None when a required field came back empty.
    """
    title = lesson.title.strip()
    system_prompt = lesson.system_prompt.strip()
    if not title or not system_prompt:
        return None

    if not has_steering_marker(system_prompt):
        system_prompt = SCENARIO_PREFIX + system_prompt
    icon = lesson.icon if lesson.icon in LESSON_ICONS else DEFAULT_LESSON_ICON

    return lesson.model_copy(
        update={
            "title": title,
            "description": lesson.description.strip(),
            "system_prompt": system_prompt,
            "icon": icon,
        }
    )


class LessonArchitect:
    def __init__(self, backend: TutorBackend) -> None:
        self._backend = backend

    async def propose_next(
        self,
        history_titles: list[str],
        memory_facts: list[str],
    ) -> GeneratedLesson:
        """Propose the next lesson from completed titles and known facts.

        Never raises: returns :func:`fallback_lesson` on any failure.
        """
        prompt = build_architect_prompt(history_titles, memory_facts)
        try:
            lesson = await self._backend.generate(prompt, GeneratedLesson, role="architect")
        except Exception:
            logger.exception("Architect generation failed — using fallback lesson")
            return fallback_lesson()

        normalized = _normalize(lesson)
        if normalized is None:
            logger.warning("Architect returned an empty lesson — using fallback lesson")
            return fallback_lesson()

        logger.info("Architect proposed lesson=%r icon=%s", normalized.title, normalized.icon)
        return normalized
