"""Translator prompt — on-demand translation of a single tutor message."""

from __future__ import annotations

TRANSLATOR_PROMPT = """\
Translate the following message from an English tutor into {language}.
Keep emojis and formatting. Return only the translation.

MESSAGE:
{text}
"""


def build_translator_prompt(text: str, language: str) -> str:
    return TRANSLATOR_PROMPT.format(text=text, language=language)
