"""Translator — on-demand translation for a tutor message that came without one."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from config.prompts.translator import build_translator_prompt
from config.settings import get_settings
from errors.exceptions import BackendError
from services.tutor_backend import TutorBackend

logger = logging.getLogger(__name__)


class TranslationResult(BaseModel):
    translation: str = Field(description="The full translated message")


async def translate_text(
    backend: TutorBackend,
    text: str,
    language: str | None = None,
) -> str:
    """Translate *text* into the learner's native language.

    Raises:
        BackendError: if the backend fails or returns an empty translation.
    """
    language = language or get_settings().native_language
    result = await backend.generate(
        build_translator_prompt(text, language),
        TranslationResult,
        role="translator",
    )
    translation = result.translation.strip()
    if not translation:
        raise BackendError("generate", "empty translation")

    logger.info("Translated message: chars=%d → %d", len(text), len(translation))
    return translation
