"""Domain-specific exceptions for the Lingo tutor engine.

These exceptions let the orchestrator tell apart the failure modes it has to
absorb: a broken model stream, an unreadable data envelope, or a persistence
call that did not go through.  None of them is ever surfaced to the learner.
"""

from __future__ import annotations


class TutorError(Exception):
    """Base class for tutor engine errors."""


class BackendError(TutorError):
    """The language-model backend failed to stream or generate.

    Wraps the provider exception (``__cause__``) and records which
    operation was running so log lines stay greppable.
    """

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"Backend '{operation}' failed: {message}")


class EnvelopeDecodeError(TutorError):
    """A fenced data block was found but could not be decoded, even after repair."""

    def __init__(self, message: str, raw_block: str = "") -> None:
        self.raw_block = raw_block
        super().__init__(message)


class PersistenceError(TutorError):
    """A repository call failed.

    Persistence is best effort: the orchestrator logs and swallows this,
    the in-memory session stays authoritative for the live conversation.
    """

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"Persistence '{operation}' failed: {message}")
