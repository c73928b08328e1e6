"""Chat API — streamed tutor turns, lesson steering, history, translation.

Endpoints:
- ``POST /api/chat/{user_id}/messages/stream``  — SSE turn (Data Stream Protocol)
- ``POST /api/chat/{user_id}/lesson/stream``    — SSE steering turn for a lesson
- ``GET  /api/chat/{user_id}/messages``         — current message log
- ``POST /api/chat/{user_id}/messages/{message_id}/translation``
- ``POST /api/chat/{user_id}/session/finish``    — progress report, learning history
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncGenerator, AsyncIterator

from fastapi import APIRouter, HTTPException
from starlette.responses import StreamingResponse

from config.lessons import get_lesson
from models.chat import SessionSummary, TurnUpdate
from models.errors import ErrorCode, format_error
from models.requests import (
    ChatHistoryResponse,
    ChatMessageRequest,
    FinishSessionRequest,
    LessonStartRequest,
    TranslationResponse,
)
from services.datastream import DataStreamEncoder, map_turn_update
from services.repository import get_repository
from services.session_registry import get_session_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])

_SSE_HEADERS = {
    "x-vercel-ai-ui-message-stream": "v1",
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
}


def _sse_response(updates: AsyncIterator[TurnUpdate]) -> StreamingResponse:
    return StreamingResponse(
        _turn_stream_generator(updates),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


async def _turn_stream_generator(
    updates: AsyncIterator[TurnUpdate],
) -> AsyncGenerator[str, None]:
    """Encode one orchestrator turn as a Data Stream Protocol SSE stream."""
    enc = DataStreamEncoder()
    shown = ""
    try:
        yield enc.start()
        async with aclosing(updates) as stream:
            async for update in stream:
                lines, shown = map_turn_update(enc, update, shown=shown)
                for line in lines:
                    yield line
    except Exception as e:
        logger.exception("Chat stream failed")
        yield enc.error(format_error(ErrorCode.INTERNAL_ERROR, str(e)))

    yield enc.finish()


def _turn_conflict() -> HTTPException:
    return HTTPException(
        status_code=409,
        detail=format_error(ErrorCode.TURN_IN_PROGRESS, "A reply is still streaming"),
    )


@router.post("/{user_id}/messages/stream")
async def stream_message(user_id: str, req: ChatMessageRequest):
    """Submit a message and stream the tutor's reply.

    Returns 409 while the previous turn is still streaming.
    """
    orchestrator = await get_session_registry().get_or_create(user_id)
    if orchestrator.is_streaming:
        raise _turn_conflict()
    return _sse_response(orchestrator.stream_turn(req.message))


@router.post("/{user_id}/lesson/stream")
async def stream_lesson(user_id: str, req: LessonStartRequest):
    """Steer the tutor into a lesson and stream its opening line.

    A topic that is already active produces an empty stream.
    """
    topic, title = req.topic, req.title
    if req.lesson_id:
        lesson = get_lesson(req.lesson_id)
        if lesson is None:
            raise HTTPException(status_code=404, detail=f"Lesson '{req.lesson_id}' not found")
        topic, title = lesson.system_prompt, lesson.title
    if not topic or not topic.strip():
        raise HTTPException(
            status_code=400,
            detail=format_error(ErrorCode.INVALID_REQUEST, "topic or lessonId is required"),
        )

    orchestrator = await get_session_registry().get_or_create(user_id)
    if orchestrator.is_streaming:
        raise _turn_conflict()
    return _sse_response(orchestrator.stream_lesson(topic, title))


@router.get("/{user_id}/messages", response_model=ChatHistoryResponse)
async def list_messages(user_id: str):
    """Return the session's message log, oldest first."""
    orchestrator = await get_session_registry().get_or_create(user_id)
    try:
        total_xp = await get_repository().get_xp(user_id)
    except Exception:
        logger.exception("Failed to read XP for user=%s", user_id)
        total_xp = orchestrator.total_xp
    return ChatHistoryResponse(user_id=user_id, messages=orchestrator.messages, total_xp=total_xp)


@router.post(
    "/{user_id}/messages/{message_id}/translation",
    response_model=TranslationResponse,
)
async def translate_message(user_id: str, message_id: str):
    """Return a message's translation, generating it on demand."""
    orchestrator = await get_session_registry().get_or_create(user_id)
    if orchestrator.get_message(message_id) is None:
        raise HTTPException(status_code=404, detail=f"Message '{message_id}' not found")

    translation = await orchestrator.translate_message(message_id)
    if translation is None:
        raise HTTPException(
            status_code=502,
            detail=format_error(ErrorCode.LLM_PROVIDER_ERROR, "Translation unavailable"),
        )
    return TranslationResponse(message_id=message_id, translation=translation)


@router.post("/{user_id}/session/finish", response_model=SessionSummary)
async def finish_session(user_id: str, req: FinishSessionRequest | None = None):
    """Finish the practice session: record the lesson and return the report.

    With ``share`` set, the report is also sent to the learner's Telegram
    chat.  Returns 409 while a reply is still streaming.
    """
    req = req or FinishSessionRequest()
    orchestrator = await get_session_registry().get_or_create(user_id)
    summary = await orchestrator.finish_session(
        user_name=req.user_name, level=req.level, share=req.share
    )
    if summary is None:
        raise _turn_conflict()
    return summary
