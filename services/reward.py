"""Reward policy — experience points for a completed turn.

Effort plus accuracy-improvement: every turn earns the base amount, longer
messages earn a bonus, and a turn that produced a correction earns the most.
"""

from __future__ import annotations

BASE_XP = 5
LONG_MESSAGE_XP = 10
CORRECTION_XP = 20
LONG_MESSAGE_CHARS = 30  # strictly more than this counts as long


def compute_reward(user_message_text: str, correction_present: bool) -> int:
    xp = BASE_XP
    if len(user_message_text) > LONG_MESSAGE_CHARS:
        xp += LONG_MESSAGE_XP
    if correction_present:
        xp += CORRECTION_XP
    return xp
