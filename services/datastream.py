"""Data Stream Protocol encoder — Vercel AI SDK UI Message Stream v1.

Encodes turn events into the Vercel AI SDK Data Stream Protocol (SSE
format) for consumption by ``useChat`` on the frontend.

Each method returns one or more SSE lines: ``"data: {json}\\n\\n"``

Reference: https://ai-sdk.dev/docs/ai-sdk-ui/stream-protocol

Required response header: ``x-vercel-ai-ui-message-stream: v1``
Termination marker: ``data: [DONE]\\n\\n``
"""

from __future__ import annotations

import json
import uuid
from typing import Any

from models.chat import TurnState, TurnUpdate


class DataStreamEncoder:
    """Encode internal events into Vercel AI SDK Data Stream Protocol.

    Every public method returns a ready-to-yield SSE string.
    """

    @staticmethod
    def _sse(payload: dict[str, Any]) -> str:
        return f"data: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"

    @staticmethod
    def _id() -> str:
        return uuid.uuid4().hex[:8]

    # ── Message Control ──────────────────────────────────────────

    def start(self, message_id: str | None = None) -> str:
        return self._sse({"type": "start", "messageId": message_id or self._id()})

    def finish(self) -> str:
        return self._sse({"type": "finish"}) + "data: [DONE]\n\n"

    # ── Text ─────────────────────────────────────────────────────

    def text_start(self, text_id: str) -> str:
        return self._sse({"type": "text-start", "id": text_id})

    def text_delta(self, text_id: str, delta: str) -> str:
        return self._sse({"type": "text-delta", "id": text_id, "delta": delta})

    def text_end(self, text_id: str) -> str:
        return self._sse({"type": "text-end", "id": text_id})

    # ── Custom Data ──────────────────────────────────────────────

    def data(self, name: str, payload: Any) -> str:
        return self._sse({"type": f"data-{name}", "data": payload})

    # ── Error ────────────────────────────────────────────────────

    def error(self, text: str) -> str:
        return self._sse({"type": "error", "errorText": text})


# ── Turn update mapping ──────────────────────────────────────────


def map_turn_update(
    enc: DataStreamEncoder,
    update: TurnUpdate,
    *,
    shown: str = "",
) -> tuple[list[str], str]:
    """Map an orchestrator ``TurnUpdate`` to Data Stream Protocol lines.

    ``data-display`` carries the full display snapshot on every streaming
    update.  ``text-delta`` is only emitted while the snapshot extends what
    was already streamed; when the data-block marker arrives the snapshot
    is trimmed and the client should prefer ``data-display``.

    Returns:
        A tuple of ``(lines, updated_shown)``.  ``updated_shown`` is the
        text streamed as deltas so far and should be passed back on the
        next call.
    """
    lines: list[str] = []
    text_id = update.message_id

    if update.state is TurnState.SUBMITTED:
        lines.append(enc.data("user-message", {"messageId": text_id, "text": update.display_text}))

    elif update.state is TurnState.STREAMING:
        display = update.display_text
        if not shown and display:
            lines.append(enc.text_start(text_id))
        if display.startswith(shown) and len(display) > len(shown):
            lines.append(enc.text_delta(text_id, display[len(shown):]))
            shown = display
        lines.append(enc.data("display", {"messageId": text_id, "text": display}))

    elif update.state is TurnState.FAILED:
        lines.append(enc.data("status", {"messageId": text_id, "state": "failed"}))

    elif update.state is TurnState.FINALIZED:
        if shown:
            lines.append(enc.text_end(text_id))
        if update.message is not None:
            lines.append(enc.data("message", update.message.model_dump(by_alias=True, mode="json")))
        lines.append(enc.data("reward", {"xp": update.xp or 0}))

    return lines, shown
