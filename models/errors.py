"""Structured error codes for log lines and API error payloads.

Failures inside a turn never reach the learner as raw exceptions — they
degrade to a fixed apology.  The codes below make the degraded paths easy
to count and grep::

    {ERROR_CODE}: {human_readable_detail}
"""

from __future__ import annotations

import asyncio
from enum import Enum

from errors.exceptions import BackendError


class ErrorCode(str, Enum):
    """Canonical error codes used across the engine."""

    INVALID_REQUEST = "INVALID_REQUEST"
    TURN_IN_PROGRESS = "TURN_IN_PROGRESS"
    LLM_PROVIDER_ERROR = "LLM_PROVIDER_ERROR"
    STREAM_TIMEOUT = "STREAM_TIMEOUT"
    ENVELOPE_DECODE_FAILED = "ENVELOPE_DECODE_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def format_error(code: ErrorCode, detail: str) -> str:
    """Format an error as ``{ERROR_CODE}: {detail}``."""
    return f"{code.value}: {detail}"


def classify_stream_error(exc: BaseException) -> str:
    """Classify an exception raised while a turn was streaming.

    Classification order (first match wins):
        1. Idle timeout between fragments.
        2. Backend / provider failure — wrapped ``BackendError`` or a
           message mentioning connection, rate limits, or quota.
        3. Fallback — ``INTERNAL_ERROR``.
    """
    detail = str(exc) or type(exc).__name__

    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return format_error(ErrorCode.STREAM_TIMEOUT, "no fragment before idle timeout")
    if isinstance(exc, BackendError):
        return format_error(ErrorCode.LLM_PROVIDER_ERROR, detail)

    lowered = detail.lower()
    if any(hint in lowered for hint in ("connection", "rate limit", "quota", "unavailable")):
        return format_error(ErrorCode.LLM_PROVIDER_ERROR, detail)

    return format_error(ErrorCode.INTERNAL_ERROR, detail)
