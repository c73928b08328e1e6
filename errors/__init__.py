"""Custom exception hierarchy for the Lingo tutor engine."""

from errors.exceptions import (
    BackendError,
    EnvelopeDecodeError,
    PersistenceError,
    TutorError,
)

__all__ = ["BackendError", "EnvelopeDecodeError", "PersistenceError", "TutorError"]
