"""Draft generation, policy enforcement and draft tracking."""

from .escalation import build_escalation_note
from .generator import DraftGenerator, extract_citations
from .policy import PolicyGate, PolicyResult, policy_gate
from .promises import DetectedPromise, detect_promised_actions
from .repository import DraftRepository, InMemoryDraftRepository, PostgresDraftRepository
from .schemas import Citation, DraftGeneration, DraftInput, DraftResult

__all__ = [
    "Citation",
    "DraftGeneration",
    "DraftGenerator",
    "DraftInput",
    "DraftRepository",
    "DetectedPromise",
    "DraftResult",
    "InMemoryDraftRepository",
    "PolicyGate",
    "PolicyResult",
    "PostgresDraftRepository",
    "build_escalation_note",
    "detect_promised_actions",
    "extract_citations",
    "policy_gate",
]
