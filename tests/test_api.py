"""FastAPI endpoint tests using httpx.AsyncClient."""

from __future__ import annotations

import json

import pytest
from httpx import ASGITransport, AsyncClient

import api.lessons
import services.repository
import services.session_registry
from agents.chat_orchestrator import WELCOME_MESSAGE_ID, ChatOrchestrator
from agents.translator import TranslationResult
from errors.exceptions import BackendError
from main import app
from models.chat import GeneratedLesson, TurnState
from services.metrics import MetricsCollector
from services.repository import InMemoryTutorRepository
from services.session_registry import SessionRegistry
from tests.fakes import FakeBackend
from tests.test_chat_orchestrator import GOED_REPLY


def _events(body: str) -> list[dict | str]:
    events: list[dict | str] = []
    for line in body.split("\n"):
        if not line.startswith("data: "):
            continue
        payload = line[len("data: "):]
        events.append("[DONE]" if payload == "[DONE]" else json.loads(payload))
    return events


def _types(events: list[dict | str]) -> list[str]:
    return [e["type"] if isinstance(e, dict) else e for e in events]


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend(
        [GOED_REPLY],
        generate_result=TranslationResult(translation="Простой ответ"),
    )


@pytest.fixture
def registry(backend, monkeypatch) -> SessionRegistry:
    repository = InMemoryTutorRepository()
    metrics = MetricsCollector()

    def factory(user_id: str) -> ChatOrchestrator:
        return ChatOrchestrator(user_id, backend, repository=repository, metrics=metrics)

    registry = SessionRegistry(factory, ttl_seconds=60)
    monkeypatch.setattr(services.session_registry, "_registry", registry)
    monkeypatch.setattr(services.repository, "_repository", repository)
    monkeypatch.setattr(api.lessons, "get_backend", lambda: backend)
    return registry


@pytest.fixture
async def client(registry):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ── Ops ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["activeSessions"] == 0


@pytest.mark.asyncio
async def test_metrics(client):
    resp = await client.get("/api/metrics")
    assert resp.status_code == 200
    assert {"counters", "turns", "xp_awarded"} <= set(resp.json())


@pytest.mark.asyncio
async def test_request_id_header(client):
    resp = await client.get("/api/health", headers={"X-Request-ID": "req-42"})
    assert resp.headers["x-request-id"] == "req-42"


# ── Chat stream ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_stream_message(client):
    resp = await client.post("/api/chat/u-1/messages/stream", json={"message": "I goed to school"})
    assert resp.status_code == 200
    assert resp.headers["x-vercel-ai-ui-message-stream"] == "v1"
    assert resp.headers["content-type"].startswith("text/event-stream")

    events = _events(resp.text)
    types = _types(events)
    assert types[0] == "start"
    assert types[-2:] == ["finish", "[DONE]"]
    assert "text-delta" in types
    assert "data-display" in types

    displays = [e["data"]["text"] for e in events if isinstance(e, dict) and e["type"] == "data-display"]
    assert displays[-1] == "Nice! You mean *went*."
    assert not any("json" in text for text in displays)

    message = next(e["data"] for e in events if isinstance(e, dict) and e["type"] == "data-message")
    assert message["text"] == "Nice! You mean *went*. "
    assert message["correction"]["corrected"] == "I went"
    reward = next(e["data"] for e in events if isinstance(e, dict) and e["type"] == "data-reward")
    assert reward == {"xp": 25}


@pytest.mark.asyncio
async def test_stream_message_failure_sends_apology(client, backend):
    backend.error = BackendError("stream", "provider down")
    backend.replies = [[]]
    resp = await client.post("/api/chat/u-1/messages/stream", json={"message": "Hello"})
    assert resp.status_code == 200

    events = _events(resp.text)
    types = _types(events)
    assert "data-status" in types
    assert "error" not in types
    message = next(e["data"] for e in events if isinstance(e, dict) and e["type"] == "data-message")
    assert "trouble" in message["text"]


@pytest.mark.asyncio
async def test_stream_message_validation(client):
    resp = await client.post("/api/chat/u-1/messages/stream", json={"message": ""})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_stream_message_conflict_while_streaming(client, registry):
    orchestrator = await registry.get_or_create("u-busy")
    orchestrator.turn_state = TurnState.STREAMING

    resp = await client.post("/api/chat/u-busy/messages/stream", json={"message": "Hi"})
    assert resp.status_code == 409
    assert resp.json()["detail"].startswith("TURN_IN_PROGRESS")


# ── Lesson stream ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_lesson_stream_fires_once(client, backend):
    resp = await client.post("/api/chat/u-1/lesson/stream", json={"lessonId": "food_a1"})
    assert resp.status_code == 200
    assert "data-message" in _types(_events(resp.text))
    assert backend.stream_calls[0]["user_text"].startswith("(SYSTEM INSTRUCTION: START_SCENARIO:")

    again = await client.post("/api/chat/u-1/lesson/stream", json={"lessonId": "food_a1"})
    assert _types(_events(again.text)) == ["start", "finish", "[DONE]"]
    assert len(backend.stream_calls) == 1


@pytest.mark.asyncio
async def test_lesson_stream_with_topic(client, backend):
    resp = await client.post("/api/chat/u-1/lesson/stream", json={"topic": "At the Airport"})
    assert resp.status_code == 200
    assert '"At the Airport"' in backend.stream_calls[0]["user_text"]


@pytest.mark.asyncio
async def test_lesson_stream_bad_requests(client):
    assert (await client.post("/api/chat/u-1/lesson/stream", json={})).status_code == 400
    missing = await client.post("/api/chat/u-1/lesson/stream", json={"lessonId": "nope"})
    assert missing.status_code == 404


# ── History / translation ───────────────────────────────────


@pytest.mark.asyncio
async def test_list_messages(client):
    resp = await client.get("/api/chat/u-1/messages")
    assert resp.status_code == 200
    data = resp.json()
    assert data["userId"] == "u-1"
    assert data["messages"][0]["id"] == WELCOME_MESSAGE_ID
    assert data["totalXp"] == 0

    await client.post("/api/chat/u-1/messages/stream", json={"message": "I goed to school"})
    data = (await client.get("/api/chat/u-1/messages")).json()
    assert [m["role"] for m in data["messages"]] == ["agent", "user", "agent"]
    assert data["totalXp"] == 25


@pytest.mark.asyncio
async def test_translation_generated_on_demand(client, backend):
    backend.replies = [["Plain reply"]]
    await client.post("/api/chat/u-1/messages/stream", json={"message": "hi"})
    messages = (await client.get("/api/chat/u-1/messages")).json()["messages"]
    message_id = messages[-1]["id"]
    assert messages[-1]["translation"] is None

    resp = await client.post(f"/api/chat/u-1/messages/{message_id}/translation")
    assert resp.status_code == 200
    assert resp.json() == {"messageId": message_id, "translation": "Простой ответ"}


@pytest.mark.asyncio
async def test_translation_unknown_message(client):
    resp = await client.post("/api/chat/u-1/messages/msg-missing/translation")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_translation_backend_failure(client, backend):
    backend.replies = [["Plain reply"]]
    backend.generate_error = BackendError("generate", "down")
    await client.post("/api/chat/u-1/messages/stream", json={"message": "hi"})
    message_id = (await client.get("/api/chat/u-1/messages")).json()["messages"][-1]["id"]

    resp = await client.post(f"/api/chat/u-1/messages/{message_id}/translation")
    assert resp.status_code == 502


# ── Lessons ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_lessons(client):
    resp = await client.get("/api/lessons")
    assert resp.status_code == 200
    lessons = resp.json()["lessons"]
    assert lessons[0]["id"] == "intro_a1"
    assert all("systemPrompt" in lesson for lesson in lessons)


@pytest.mark.asyncio
async def test_next_lesson(client, backend):
    backend.generate_result = GeneratedLesson(
        title="В кафе",
        description="Закажи кофе.",
        system_prompt="START_SCENARIO: You are a barista.",
        icon="Coffee",
    )
    resp = await client.post(
        "/api/lessons/next",
        json={"historyTitles": ["Знакомство"], "memoryFacts": ["Likes coffee"]},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["title"] == "В кафе"
    assert data["systemPrompt"] == "START_SCENARIO: You are a barista."


@pytest.mark.asyncio
async def test_next_lesson_fallback(client, backend):
    backend.generate_error = BackendError("generate", "down")
    resp = await client.post("/api/lessons/next", json={})
    assert resp.status_code == 200
    assert resp.json()["icon"] == "MessageCircle"


@pytest.mark.asyncio
async def test_next_lesson_uses_stored_history(client, backend):
    backend.generate_result = GeneratedLesson(
        title="В аэропорту",
        description="Пройди регистрацию.",
        system_prompt="START_SCENARIO: You are a check-in agent.",
        icon="Plane",
    )
    await client.post("/api/chat/u-1/lesson/stream", json={"lessonId": "food_a1"})
    await client.post("/api/chat/u-1/session/finish", json={})

    resp = await client.post("/api/lessons/next", json={"userId": "u-1"})
    assert resp.status_code == 200
    assert "User has completed: Еда и напитки." in backend.generate_calls[-1]["prompt"]


# ── Session finish ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_finish_session(client):
    await client.post("/api/chat/u-1/lesson/stream", json={"lessonId": "food_a1"})
    await client.post("/api/chat/u-1/messages/stream", json={"message": "I goed to school"})

    resp = await client.post("/api/chat/u-1/session/finish", json={"userName": "Аня", "share": True})
    assert resp.status_code == 200
    data = resp.json()
    assert data["topicTitle"] == "Еда и напитки"
    assert data["xp"] == 25
    assert data["corrections"] == 1
    assert "*Аня*" in data["report"]
    # No notifier configured for these sessions
    assert data["shared"] is False

    again = (await client.post("/api/chat/u-1/session/finish")).json()
    assert again["xp"] == 0
    assert again["topicTitle"] is None


@pytest.mark.asyncio
async def test_finish_session_conflict_while_streaming(client, registry):
    orchestrator = await registry.get_or_create("u-busy")
    orchestrator.turn_state = TurnState.STREAMING

    resp = await client.post("/api/chat/u-busy/session/finish", json={})
    assert resp.status_code == 409
