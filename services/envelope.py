"""Envelope parser — pulls the hidden data block out of a finished agent reply.

The tutor ends every reply with a fenced ```json block carrying the
side-channel payload (correction, memory fact, translation, feedback).
Parsing is fail-open: a missing block is a normal outcome, and a block that
cannot be decoded even after best-effort repair is logged and dropped while
the visible chat text is kept.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from errors.exceptions import EnvelopeDecodeError
from models.chat import Correction, Envelope, EnvelopeStatus

logger = logging.getLogger(__name__)

DATA_BLOCK_MARKER = "```json"

# Complete block: ```json ... ```
_BLOCK_RE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


# ── Repair helpers ───────────────────────────────────────────


def _strip_line_comments(text: str) -> str:
    """Remove ``// ...`` comments that sit outside JSON strings."""
    out: list[str] = []
    in_string = False
    escaped = False
    i = 0
    while i < len(text):
        char = text[i]
        if in_string:
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            i += 1
            continue

        if char == '"':
            in_string = True
        elif char == "/" and text.startswith("//", i):
            newline = text.find("\n", i)
            if newline == -1:
                break
            i = newline
            continue
        out.append(char)
        i += 1
    return "".join(out)


def repair_json(raw: str) -> str:
    """Best-effort fixes for common LLM authoring mistakes.

    Strips line comments and trailing commas before closing brackets.
    Not a guarantee — the result may still fail to decode.
    """
    repaired = _strip_line_comments(raw.strip())
    return _TRAILING_COMMA_RE.sub(r"\1", repaired)


def decode_block(raw: str) -> dict[str, Any]:
    """Decode a block body into a dict, repairing it if needed.

    Raises:
        EnvelopeDecodeError: if the body is not a JSON object even after repair.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        try:
            data = json.loads(repair_json(raw))
        except json.JSONDecodeError as exc:
            raise EnvelopeDecodeError(f"invalid JSON after repair: {exc}", raw) from exc

    if not isinstance(data, dict):
        raise EnvelopeDecodeError(
            f"expected a JSON object, got {type(data).__name__}", raw
        )
    return data


# ── Field mapping ────────────────────────────────────────────


def _text_field(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _to_correction(raw: Any) -> Correction | None:
    """Normalize ``{original, fixed|corrected, explanation, example?}``."""
    if not isinstance(raw, dict):
        return None

    corrected = raw.get("fixed") or raw.get("corrected")
    if not isinstance(corrected, str) or not corrected.strip():
        return None

    example = raw.get("example")
    if isinstance(example, list):
        example = next((e for e in example if isinstance(e, str)), None)
    examples = [example.strip()] if isinstance(example, str) and example.strip() else []

    return Correction(
        original=str(raw.get("original") or ""),
        corrected=corrected.strip(),
        explanation=str(raw.get("explanation") or ""),
        examples=examples,
    )


def _locate_block(text: str) -> tuple[int, int, str] | None:
    """Find the data block: ``(start, end, body)``.

    An opening marker without a closing fence (reply cut off mid-block)
    still counts: the body runs to the end of the text.
    """
    match = _BLOCK_RE.search(text)
    if match:
        return match.start(), match.end(), match.group(1)

    start = text.find(DATA_BLOCK_MARKER)
    if start == -1:
        return None
    return start, len(text), text[start + len(DATA_BLOCK_MARKER):].strip()


def _strip_leftover_blocks(text: str) -> str:
    """Drop any further complete blocks and cut at a dangling marker."""
    text = _BLOCK_RE.sub("", text)
    marker_at = text.find(DATA_BLOCK_MARKER)
    if marker_at != -1:
        text = text[:marker_at]
    return text


# ── Public API ───────────────────────────────────────────────


def parse_envelope(full_text: str) -> Envelope:
    """Split a finished reply into clean chat text and structured fields.

    Args:
        full_text: Everything the backend streamed for this turn.

    Returns:
        An :class:`Envelope`.  Without a block, ``clean_text`` is the input
        unchanged and ``status`` is ``ABSENT``.  With a block, ``clean_text``
        has every block removed (surrounding line breaks stripped) whether
        or not the first one decoded.  Only the first block is decoded.
    """
    located = _locate_block(full_text)
    if located is None:
        return Envelope(clean_text=full_text, status=EnvelopeStatus.ABSENT)

    start, end, body = located
    clean_text = _strip_leftover_blocks(full_text[:start] + full_text[end:]).strip("\r\n")

    try:
        data = decode_block(body)
    except EnvelopeDecodeError as exc:
        logger.warning(
            "Envelope decode failed (%s); dropping side-channel payload: %.120s",
            exc,
            exc.raw_block,
        )
        return Envelope(clean_text=clean_text, status=EnvelopeStatus.DECODE_FAILED)

    return Envelope(
        clean_text=clean_text,
        status=EnvelopeStatus.PARSED,
        correction=_to_correction(data.get("correction")),
        memory=_text_field(data, "memory"),
        translation=_text_field(data, "ru_translation"),
        feedback=_text_field(data, "feedback_collected"),
    )
