"""Curated learning path — hand-authored lessons with full tutor instructions.

Every ``system_prompt`` here carries a ``TOPIC:`` or ``START_SCENARIO:``
marker, so the steering policy passes it to the tutor unchanged.
"""

from __future__ import annotations

from typing import Literal

from models.base import CamelModel


class LessonModule(CamelModel):
    """One curated lesson on the learning path."""

    id: str
    title: str
    description: str
    icon: str
    level: Literal["A1", "A2", "B1", "B2"]
    system_prompt: str
    xp_reward: int


LEARNING_PATH: list[LessonModule] = [
    # ── A1 ──
    LessonModule(
        id="intro_a1",
        title="Знакомство",
        description="Расскажи о себе и узнай Лео.",
        icon="Hand",
        level="A1",
        xp_reward=50,
        system_prompt=(
            "TOPIC: Introduction. The user has just opened the 'Introduction' lesson. "
            "Ask for their name, where they are from, and one hobby. Speak simple "
            "English (A1) and correct major mistakes only. Start with: 'Hello! I am "
            "Leo. Let's get to know each other! What is your name?'"
        ),
    ),
    LessonModule(
        id="food_a1",
        title="Еда и напитки",
        description="Научись заказывать кофе.",
        icon="Coffee",
        level="A1",
        xp_reward=100,
        system_prompt=(
            "START_SCENARIO: Barista at 'Lingo Café'. The user wants to order. Ask: "
            "'Hi there! Welcome to Lingo Café. What can I get started for you today?' "
            "Help them order a drink and a snack. Be friendly."
        ),
    ),
    LessonModule(
        id="routine_a1",
        title="Мой день",
        description="Present Simple: твоя рутина.",
        icon="Sun",
        level="A1",
        xp_reward=100,
        system_prompt=(
            "TOPIC: Daily Routine. Ask what the user does in the morning. Focus on "
            "Present Simple (I wake up, I go) and correct 'I am go' mistakes. Start "
            "with: 'Tell me, what time do you usually wake up?'"
        ),
    ),
    # ── A2 ──
    LessonModule(
        id="travel_a2",
        title="Путешествия",
        description="Past Simple: как прошёл отпуск?",
        icon="Plane",
        level="A2",
        xp_reward=150,
        system_prompt=(
            "TOPIC: Travel Memories. Ask about the user's last trip. Focus on Past "
            "Simple verbs (went, saw, ate). Start with: 'I love traveling! 🌍 Where "
            "was the last place you visited?'"
        ),
    ),
    LessonModule(
        id="future_plans_a2",
        title="Планы на будущее",
        description="Going to / Will",
        icon="Rocket",
        level="A2",
        xp_reward=150,
        system_prompt=(
            "TOPIC: Future Plans. Discuss next weekend or next summer. Push 'going "
            "to' for plans and 'will' for predictions. Start with: 'Do you have any "
            "big plans for the next weekend?'"
        ),
    ),
    # ── B1 ──
    LessonModule(
        id="job_interview_b1",
        title="Собеседование",
        description="Пройди интервью на работу мечты.",
        icon="Briefcase",
        level="B1",
        xp_reward=200,
        system_prompt=(
            "START_SCENARIO: HR manager interviewing the user for their dream job. "
            "Ask one question at a time about experience and strengths. Start with: "
            "'Thanks for coming in today! Could you tell me a little about yourself?'"
        ),
    ),
]

_LESSONS_BY_ID: dict[str, LessonModule] = {lesson.id: lesson for lesson in LEARNING_PATH}


def get_lesson(lesson_id: str) -> LessonModule | None:
    """Look up a curated lesson by ID."""
    return _LESSONS_BY_ID.get(lesson_id)
