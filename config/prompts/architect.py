"""Lesson architect prompt — proposes the next procedural lesson."""

from __future__ import annotations

LESSON_ICONS: tuple[str, ...] = (
    "Hand",
    "Coffee",
    "Sun",
    "Plane",
    "Rocket",
    "Briefcase",
    "MapPin",
    "Camera",
    "Music",
    "Heart",
    "Star",
    "Book",
    "Gamepad",
    "Pizza",
    "Car",
)

DEFAULT_LESSON_ICON = "Star"

ARCHITECT_PROMPT = """\
ROLE: You are the "Architect" of a procedural language learning path.

INPUT:
- {history_context}
- {memory_context}

TASK:
Generate the ONE best NEXT lesson for this user.
- If the user is new: start with an introduction or the basics.
- If they have history: suggest something new related to their interests
  (facts) or a logical next step (e.g. Food -> Restaurant -> Cooking).
- If a topic looks unfinished: suggest a review session.

AVAILABLE ICONS (choose exactly one):
{icons}

OUTPUT FIELDS:
- title: short catchy title in Russian (max 3 words)
- description: one sentence in Russian motivating the user
- system_prompt: hidden instructions for the tutor to open this role-play;
  MUST start with "START_SCENARIO:"
- icon: one name from the available icons
"""


def build_architect_prompt(history_titles: list[str], memory_facts: list[str]) -> str:
    """Build the architect prompt from completed lesson titles and user facts."""
    history_context = (
        f"User has completed: {', '.join(history_titles)}."
        if history_titles
        else "User is brand new."
    )
    memory_context = (
        f"User facts: {', '.join(memory_facts)}"
        if memory_facts
        else "No personal facts known."
    )
    return ARCHITECT_PROMPT.format(
        history_context=history_context,
        memory_context=memory_context,
        icons=", ".join(LESSON_ICONS),
    )
