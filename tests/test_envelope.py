"""Tests for the envelope parser — hidden data block extraction and repair."""

from __future__ import annotations

import pytest

from errors.exceptions import EnvelopeDecodeError
from models.chat import EnvelopeStatus
from services.envelope import decode_block, parse_envelope, repair_json


def _reply(text: str, block: str) -> str:
    return f"{text}\n```json\n{block}\n```"


# ── parse_envelope ───────────────────────────────────────────


class TestParseEnvelope:
    def test_no_block_returns_text_unchanged(self):
        envelope = parse_envelope("Hello there! How are you?")
        assert envelope.status == EnvelopeStatus.ABSENT
        assert envelope.clean_text == "Hello there! How are you?"
        assert envelope.correction is None
        assert envelope.translation is None

    def test_full_block(self):
        block = (
            '{"correction": {"original": "I goed", "fixed": "I went", '
            '"explanation": "go → went", "example": "I went home."}, '
            '"memory": "Goes to school", "ru_translation": "Отлично!", '
            '"feedback_collected": "Nice app"}'
        )
        envelope = parse_envelope(_reply("Great!", block))

        assert envelope.status == EnvelopeStatus.PARSED
        assert envelope.clean_text == "Great!"
        assert envelope.correction.original == "I goed"
        assert envelope.correction.corrected == "I went"
        assert envelope.correction.explanation == "go → went"
        assert envelope.correction.examples == ["I went home."]
        assert envelope.memory == "Goes to school"
        assert envelope.translation == "Отлично!"
        assert envelope.feedback == "Nice app"

    def test_null_fields_are_absent(self):
        block = '{"correction": null, "memory": null, "ru_translation": "Привет"}'
        envelope = parse_envelope(_reply("Hi!", block))
        assert envelope.status == EnvelopeStatus.PARSED
        assert envelope.correction is None
        assert envelope.memory is None
        assert envelope.feedback is None
        assert envelope.translation == "Привет"

    def test_corrected_key_is_accepted(self):
        block = '{"correction": {"original": "he go", "corrected": "he goes"}}'
        envelope = parse_envelope(_reply("Ok", block))
        assert envelope.correction.corrected == "he goes"
        assert envelope.correction.examples == []

    def test_correction_without_fix_is_dropped(self):
        block = '{"correction": {"original": "he go", "explanation": "?"}}'
        envelope = parse_envelope(_reply("Ok", block))
        assert envelope.status == EnvelopeStatus.PARSED
        assert envelope.correction is None

    def test_example_list_keeps_first_string(self):
        block = '{"correction": {"original": "a", "fixed": "b", "example": ["One.", "Two."]}}'
        envelope = parse_envelope(_reply("Ok", block))
        assert envelope.correction.examples == ["One."]

    def test_trailing_space_before_block_is_kept(self):
        text = "Nice! You mean *went*. \n```json\n{\"ru_translation\": \"Да\"}\n```"
        assert parse_envelope(text).clean_text == "Nice! You mean *went*. "

    def test_malformed_json_degrades(self):
        envelope = parse_envelope(_reply("Still here", '{"memory": "x", oops}'))
        assert envelope.status == EnvelopeStatus.DECODE_FAILED
        assert envelope.clean_text == "Still here"
        assert envelope.memory is None
        assert envelope.correction is None

    def test_non_object_json_degrades(self):
        envelope = parse_envelope(_reply("List", '["a", "b"]'))
        assert envelope.status == EnvelopeStatus.DECODE_FAILED
        assert envelope.clean_text == "List"

    def test_repairable_json_is_decoded(self):
        block = '{\n  "memory": "Likes cats", // learned today\n  "ru_translation": "Да",\n}'
        envelope = parse_envelope(_reply("Cats!", block))
        assert envelope.status == EnvelopeStatus.PARSED
        assert envelope.memory == "Likes cats"

    def test_unterminated_block_is_removed(self):
        envelope = parse_envelope('Bye!\n```json\n{"memory": "Leaving"}')
        assert envelope.clean_text == "Bye!"
        assert envelope.memory == "Leaving"

    def test_parse_is_idempotent_on_clean_text(self):
        first = parse_envelope(_reply("Good job!", '{"ru_translation": "Молодец!"}'))
        second = parse_envelope(first.clean_text)
        assert second.status == EnvelopeStatus.ABSENT
        assert second.clean_text == first.clean_text

    def test_text_after_block_is_kept(self):
        text = 'Before\n```json\n{"memory": "m"}\n```\nAfter'
        assert parse_envelope(text).clean_text == "Before\n\nAfter"

    def test_second_block_is_stripped(self):
        text = (
            'Nice! ```json\n{"memory": "likes tea"}\n```\n'
            '```json\n{"ru_translation": "x"}\n```'
        )
        envelope = parse_envelope(text)
        assert envelope.memory == "likes tea"
        assert envelope.translation is None
        assert envelope.clean_text == "Nice! "
        assert parse_envelope(envelope.clean_text).status == EnvelopeStatus.ABSENT

    def test_dangling_marker_after_block_is_cut(self):
        text = 'Hi ```json\n{"memory": "a"}\n``` and then ```json {"memory": "b"'
        envelope = parse_envelope(text)
        assert envelope.memory == "a"
        assert envelope.clean_text == "Hi  and then "
        assert "```" not in envelope.clean_text
        assert parse_envelope(envelope.clean_text).status == EnvelopeStatus.ABSENT


# ── repair / decode ──────────────────────────────────────────


class TestRepair:
    def test_comment_inside_string_is_preserved(self):
        raw = '{"url": "http://example.com"}'
        assert repair_json(raw) == raw

    def test_trailing_comma_in_array(self):
        assert repair_json('{"a": [1, 2,]}') == '{"a": [1, 2]}'

    def test_decode_block_raises_on_garbage(self):
        with pytest.raises(EnvelopeDecodeError) as exc_info:
            decode_block("not json at all")
        assert exc_info.value.raw_block == "not json at all"
