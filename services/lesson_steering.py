"""Lesson steering — turn a lesson topic into a directive the tutor acts on.

Lessons arrive in two shapes: a fully authored instruction from the curated
catalogue (carries a ``TOPIC:`` or ``SCENARIO:`` marker) or a short
human-readable title from the architect.  Both are normalized into one
system-level instruction.
"""

from __future__ import annotations

STEERING_MARKERS: tuple[str, ...] = ("TOPIC:", "SCENARIO:")  # also matches START_SCENARIO:

_PASSTHROUGH_TEMPLATE = "(SYSTEM INSTRUCTION: {topic})"

_ROLEPLAY_TEMPLATE = (
    '(SYSTEM INSTRUCTION: The user started the lesson "{topic}". '
    "Stop being a general tutor. Act as if we are in a role-play scenario "
    "related to this topic immediately. Ask the first question to start the scene.)"
)


def has_steering_marker(topic: str) -> bool:
    """True when *topic* is already an authored tutor instruction."""
    return any(marker in topic for marker in STEERING_MARKERS)


def build_steering_instruction(topic: str) -> str:
    """Wrap a lesson topic as a system instruction for the tutor.

    Authored instructions pass through unchanged; bare titles get the
    generic role-play directive.
    """
    topic = topic.strip()
    if has_steering_marker(topic):
        return _PASSTHROUGH_TEMPLATE.format(topic=topic)
    return _ROLEPLAY_TEMPLATE.format(topic=topic)
