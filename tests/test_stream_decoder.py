"""Tests for the stream decoder — display-safe text during streaming."""

from __future__ import annotations

from services.stream_decoder import StreamAccumulator, consume, display_text


class TestDisplayText:
    def test_identity_without_marker(self):
        for text in ["", "Hi", "  padded  ", "Line one\nLine two\n", "a `code` span"]:
            assert display_text(text) == text

    def test_text_before_marker_trimmed(self):
        assert display_text('Nice!  \n```json\n{"memory": "x"}\n```') == "Nice!"

    def test_partial_block_is_hidden(self):
        assert display_text('Great job!\n```json\n{"corr') == "Great job!"

    def test_marker_at_start(self):
        assert display_text("```json\n{}") == ""


class TestConsume:
    def test_returns_buffer_and_display(self):
        buffer, shown = consume("Hello ", "world")
        assert buffer == "Hello world"
        assert shown == "Hello world"

    def test_marker_split_across_fragments(self):
        buffer, shown = consume("", "Well done! ``")
        buffer, shown = consume(buffer, "`js")
        assert shown == buffer
        buffer, shown = consume(buffer, 'on\n{"memory"')
        assert shown == "Well done!"
        assert buffer.endswith('{"memory"')


class TestStreamAccumulator:
    def test_feed_tracks_fragments(self):
        acc = StreamAccumulator()
        assert acc.feed("Nice! ") == "Nice! "
        assert acc.feed("You mean *went*. ") == "Nice! You mean *went*. "
        assert acc.feed('\n```json\n{"ru_translation": "Да"}\n```') == "Nice! You mean *went*."
        assert acc.fragment_count == 3
        assert acc.buffer.startswith("Nice! You mean *went*. \n```json")

    def test_display_never_contains_block_characters(self):
        acc = StreamAccumulator()
        reply = 'Good!\n```json\n{"memory": "Likes tea", "ru_translation": "Хорошо!"}\n```'
        for char in reply:
            shown = acc.feed(char)
            if "```json" in acc.buffer:
                assert "{" not in shown
                assert "json" not in shown
        assert acc.display_text == "Good!"
