"""Customer verification gate for protected intents."""

from .gate import VerificationGate
from .schemas import VerificationResult, VerificationStatus

__all__ = ["VerificationGate", "VerificationResult", "VerificationStatus"]
