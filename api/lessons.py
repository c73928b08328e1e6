"""Lesson endpoints — curated catalogue and procedural next-lesson proposals."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from agents.lesson_architect import LessonArchitect
from config.lessons import LEARNING_PATH
from models.chat import GeneratedLesson
from models.requests import NextLessonRequest
from services.repository import get_repository
from services.tutor_backend import get_backend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lessons", tags=["lessons"])


@router.get("")
async def list_lessons():
    """List the curated learning path in order."""
    return {"lessons": [lesson.model_dump(by_alias=True) for lesson in LEARNING_PATH]}


@router.post("/next", response_model=GeneratedLesson)
async def next_lesson(req: NextLessonRequest):
    """Propose the next lesson.  Always returns a lesson, never an error."""
    history_titles = req.history_titles
    memory_facts = req.memory_facts
    if req.user_id:
        repository = get_repository()
        try:
            if not history_titles:
                history_titles = await repository.load_learning_titles(req.user_id)
            if not memory_facts:
                memory_facts = await repository.load_facts(req.user_id)
        except Exception:
            logger.exception("Failed to load learning history for user=%s", req.user_id)

    architect = LessonArchitect(get_backend())
    return await architect.propose_next(history_titles, memory_facts)
