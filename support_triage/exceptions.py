"""Error types raised by the triage pipeline.

Most component failures are recovered close to their source (a classifier
error becomes an UNKNOWN intent, a generation error becomes a null draft).
The errors below are the ones callers are expected to see.
"""

from __future__ import annotations


class TriageError(RuntimeError):
    """Base class for pipeline errors."""


class ThreadNotFoundError(TriageError):
    """Raised when a thread could not be located."""


class DraftNotFoundError(TriageError):
    """Raised when a draft generation record could not be located."""


class DraftAlreadySentError(TriageError):
    """Raised when a draft is marked as sent a second time."""


class ObservationNotActiveError(TriageError):
    """Raised when releasing a thread that is not in observation mode."""


class ObservationAlreadyActiveError(TriageError):
    """Raised when a thread is already being handled by a human."""


class ConcurrentUpdateError(TriageError):
    """Raised when a thread changed between read and write."""


class InvalidTransitionError(TriageError):
    """Raised when a manual state change is not an allowed transition."""


class LLMNotConfiguredError(TriageError):
    """Raised when a language-model call is attempted without credentials."""
