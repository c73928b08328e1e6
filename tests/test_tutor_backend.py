"""Tests for the PydanticAI backend, model provider, and LLMConfig."""

from __future__ import annotations

import pytest
from pydantic import BaseModel
from pydantic_ai.messages import ModelMessage
from pydantic_ai.models.function import AgentInfo, FunctionModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.models.test import TestModel

from agents.provider import create_model, get_model_name
from config.llm_config import LLMConfig
from config.settings import get_settings
from errors.exceptions import BackendError
from services.session_store import HistoryTurn
from services.tutor_backend import PydanticAIBackend


def _part_contents(messages: list[ModelMessage]) -> list[str]:
    return [
        part.content
        for message in messages
        for part in message.parts
        if isinstance(getattr(part, "content", None), str)
    ]


# ── stream ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_stream_yields_fragments_in_order():
    async def stream_fn(messages: list[ModelMessage], info: AgentInfo):
        yield "Nice! "
        yield "You mean *went*."

    backend = PydanticAIBackend(FunctionModel(stream_function=stream_fn))
    fragments = [f async for f in backend.stream("Be Leo.", [], "I goed to school")]
    assert "".join(fragments) == "Nice! You mean *went*."


@pytest.mark.asyncio
async def test_stream_sends_history_and_user_text():
    seen: list[list[str]] = []

    async def stream_fn(messages: list[ModelMessage], info: AgentInfo):
        seen.append(_part_contents(messages))
        yield "ok"

    turns = [
        HistoryTurn(role="assistant", content="Welcome!"),
        HistoryTurn(role="user", content="Earlier question"),
        HistoryTurn(role="assistant", content="Earlier answer"),
    ]
    backend = PydanticAIBackend(FunctionModel(stream_function=stream_fn))
    async for _ in backend.stream("Be Leo.", turns, "New question"):
        pass

    contents = seen[0]
    assert "Earlier question" in contents
    assert "Earlier answer" in contents
    assert contents[-1] == "New question"


@pytest.mark.asyncio
async def test_stream_wraps_provider_errors():
    async def stream_fn(messages: list[ModelMessage], info: AgentInfo):
        yield "partial"
        raise RuntimeError("connection reset")

    backend = PydanticAIBackend(FunctionModel(stream_function=stream_fn))
    received: list[str] = []
    with pytest.raises(BackendError) as exc_info:
        async for fragment in backend.stream("Be Leo.", [], "Hi"):
            received.append(fragment)
    assert exc_info.value.operation == "stream"
    assert "connection reset" in str(exc_info.value)


# ── generate ────────────────────────────────────────────────


class _Answer(BaseModel):
    text: str


@pytest.mark.asyncio
async def test_generate_returns_schema_instance():
    backend = PydanticAIBackend(TestModel(custom_output_args={"text": "hello"}))
    result = await backend.generate("Say hello", _Answer)
    assert isinstance(result, _Answer)
    assert result.text == "hello"


@pytest.mark.asyncio
async def test_generate_wraps_errors():
    def broken(messages: list[ModelMessage], info: AgentInfo):
        raise RuntimeError("quota exceeded")

    backend = PydanticAIBackend(FunctionModel(broken))
    with pytest.raises(BackendError) as exc_info:
        await backend.generate("Say hello", _Answer, role="translator")
    assert exc_info.value.operation == "generate"


# ── provider ────────────────────────────────────────────────


def test_create_model_openai_compatible():
    model = create_model("dashscope/qwen-max")
    assert isinstance(model, OpenAIChatModel)
    assert model.model_name == "qwen-max"


def test_create_model_openai_prefix_stripped():
    model = create_model("openai/gpt-4o")
    assert isinstance(model, OpenAIChatModel)
    assert model.model_name == "gpt-4o"


def test_get_model_name_by_role():
    settings = get_settings()
    assert get_model_name("tutor") == settings.tutor_model
    assert get_model_name("architect") == settings.architect_model
    assert get_model_name("translator") == settings.translator_model
    assert get_model_name("unknown") == settings.tutor_model


# ── LLMConfig ───────────────────────────────────────────────


def test_merge_override_non_none():
    base = LLMConfig(model="gemini/gemini-2.5-flash", temperature=0.7, max_tokens=2048)
    merged = base.merge(LLMConfig(temperature=0.3))
    assert merged.temperature == 0.3
    assert merged.max_tokens == 2048
    assert merged.model == "gemini/gemini-2.5-flash"


def test_to_model_settings_maps_stop_sequences():
    settings = LLMConfig(temperature=0.5, stop=["END"]).to_model_settings()
    assert settings == {"temperature": 0.5, "stop_sequences": ["END"]}


def test_validation_temperature_range():
    with pytest.raises(ValueError):
        LLMConfig(temperature=3.0)
