"""Tutor backend — the language-model collaborator behind the turn engine.

Two calls, matching how the engine uses a model:

- ``stream(system_instruction, turns, user_text)`` — an async iterator of
  text fragments for a chat turn, strictly ordered.
- ``generate(prompt, schema)`` — one non-streaming structured call
  (lesson architect, translator).

``PydanticAIBackend`` implements both with PydanticAI agents; tests plug in
``TestModel`` / ``FunctionModel`` or a hand-written fake backend.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, TypeVar

from pydantic import BaseModel
from pydantic_ai import Agent

from agents.provider import create_model, get_model_name
from config.llm_config import LLMConfig
from config.settings import get_settings
from errors.exceptions import BackendError
from services.session_store import HistoryTurn, turns_to_model_messages

logger = logging.getLogger(__name__)

OutputT = TypeVar("OutputT", bound=BaseModel)

# Warm for natural conversation, cool for schema-constrained output
TUTOR_LLM_CONFIG = LLMConfig(temperature=0.7)
GENERATION_LLM_CONFIG = LLMConfig(temperature=0.3)


class TutorBackend(ABC):
    """Abstract language-model backend."""

    @abstractmethod
    def stream(
        self,
        system_instruction: str,
        turns: list[HistoryTurn],
        user_text: str,
    ) -> AsyncIterator[str]:
        """Stream the reply to *user_text* as text fragments."""
        ...

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        schema: type[OutputT],
        *,
        role: str = "architect",
    ) -> OutputT:
        """Run one structured generation and return a *schema* instance."""
        ...


class PydanticAIBackend(TutorBackend):
    """Backend powered by PydanticAI agents.

    Args:
        model: Optional model instance used for every call (tests pass
            ``TestModel`` / ``FunctionModel`` here).  When omitted, models
            are built lazily per role from Settings.
        llm_config: Agent-level overrides for chat turns.
    """

    def __init__(self, model: Any | None = None, *, llm_config: LLMConfig | None = None):
        self._override = model
        self._models: dict[str, Any] = {}
        defaults = get_settings().get_default_llm_config()
        self._stream_config = defaults.merge(TUTOR_LLM_CONFIG)
        if llm_config:
            self._stream_config = self._stream_config.merge(llm_config)
        self._generate_config = defaults.merge(GENERATION_LLM_CONFIG)

    def _model_for(self, role: str) -> Any:
        if self._override is not None:
            return self._override
        if role not in self._models:
            name = get_model_name(role)
            self._models[role] = create_model(name)
            logger.info("Backend model for role=%s: %s", role, name)
        return self._models[role]

    async def stream(
        self,
        system_instruction: str,
        turns: list[HistoryTurn],
        user_text: str,
    ) -> AsyncIterator[str]:
        agent = Agent(
            model=self._model_for("tutor"),
            instructions=system_instruction,
            retries=1,
            defer_model_check=True,
        )
        try:
            async with agent.run_stream(
                user_text,
                message_history=turns_to_model_messages(turns),
                model_settings=self._stream_config.to_model_settings() or None,
            ) as result:
                async for chunk in result.stream_text(delta=True, debounce_by=None):
                    if chunk:
                        yield chunk
        except BackendError:
            raise
        except Exception as exc:
            raise BackendError("stream", f"{type(exc).__name__}: {exc}") from exc

    async def generate(
        self,
        prompt: str,
        schema: type[OutputT],
        *,
        role: str = "architect",
    ) -> OutputT:
        agent = Agent(
            model=self._model_for(role),
            output_type=schema,
            retries=1,
            defer_model_check=True,
        )
        try:
            result = await agent.run(
                prompt,
                model_settings=self._generate_config.to_model_settings() or None,
            )
        except Exception as exc:
            raise BackendError("generate", f"{type(exc).__name__}: {exc}") from exc
        return result.output


_backend: TutorBackend | None = None


def get_backend() -> TutorBackend:
    """Get the singleton backend instance."""
    global _backend
    if _backend is None:
        _backend = PydanticAIBackend()
    return _backend
