"""Stream decoder — display-safe text while a reply is still streaming.

The hidden data block must never flash on screen.  Every fragment is
appended to the running buffer and the *whole* buffer is rescanned for the
block marker, so a marker split across two fragments is still caught.
Replies are short; the full rescan costs nothing worth optimizing.
"""

from __future__ import annotations

from services.envelope import DATA_BLOCK_MARKER


def display_text(buffer: str) -> str:
    """Return the part of *buffer* that is safe to show.

    Everything strictly before the data-block marker, trimmed; the buffer
    unchanged when no marker has arrived yet.
    """
    marker_at = buffer.find(DATA_BLOCK_MARKER)
    if marker_at == -1:
        return buffer
    return buffer[:marker_at].strip()


def consume(previous_buffer: str, new_fragment: str) -> tuple[str, str]:
    """Append a fragment and recompute the display text.

    Returns:
        ``(updated_buffer, display_text)``.
    """
    buffer = previous_buffer + new_fragment
    return buffer, display_text(buffer)


class StreamAccumulator:
    """Per-turn buffer of every fragment received so far.

    Lives for one streaming call; the orchestrator drops it after
    finalization.
    """

    def __init__(self) -> None:
        self.buffer = ""
        self.display_text = ""
        self.fragment_count = 0

    def feed(self, fragment: str) -> str:
        """Consume one fragment and return the new display text."""
        self.buffer, self.display_text = consume(self.buffer, fragment)
        self.fragment_count += 1
        return self.display_text
