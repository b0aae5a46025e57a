"""Internal notes attached to escalated threads.

The note gives the human who picks the thread up the context the pipeline
already has: why it escalated, what the customer asked about, how
verification went and what the knowledge base offered.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..intents import taxonomy
from ..retrieval.schemas import SearchResult
from ..verification.schemas import VerificationResult, VerificationStatus

MAX_KB_TITLES = 3


def build_escalation_note(
    reason: str,
    intent: str,
    *,
    sender: Optional[str] = None,
    verification: Optional[VerificationResult] = None,
    kb_results: Optional[Sequence[SearchResult]] = None,
    policy_reasons: Sequence[str] = (),
) -> str:
    """Render the escalation note.

    ``kb_results`` is ``None`` when retrieval never ran for the message and
    an empty sequence when it ran and found nothing.
    """

    lines = [f"Escalation reason: {reason}", f"Detected intent: {intent}"]
    lines.append(f"Customer: {_customer(sender, verification)}")
    lines.append(f"Verification: {_verification(verification)}")
    if verification is not None and verification.flags:
        lines.append(f"Flags: {', '.join(verification.flags)}")
    if kb_results is not None:
        lines.append(f"Knowledge base: {_knowledge(kb_results)}")
    if policy_reasons:
        lines.append(f"Policy violations: {'; '.join(policy_reasons)}")

    lines.append("")
    lines.append("Recommended actions:")
    lines.extend(
        f"- {action}"
        for action in recommended_actions(intent, verification, kb_results, policy_reasons)
    )
    return "\n".join(lines)


def recommended_actions(
    intent: str,
    verification: Optional[VerificationResult],
    kb_results: Optional[Sequence[SearchResult]],
    policy_reasons: Sequence[str],
) -> List[str]:
    actions = ["Review the full conversation before replying"]
    if intent == taxonomy.CHARGEBACK_THREAT:
        actions.append("Confirm the order and payment status; do not promise an outcome")
    elif intent == taxonomy.LEGAL_SAFETY_RISK:
        actions.append("Route to the owner for legal or safety review")
    if verification is not None and verification.status is VerificationStatus.FLAGGED:
        actions.append("Check the customer's account flags before any refund or replacement")
    elif intent in taxonomy.PROTECTED_INTENTS and (
        verification is None or verification.status is not VerificationStatus.VERIFIED
    ):
        actions.append("Confirm the order number and purchase email")
    if policy_reasons:
        actions.append("Rewrite the draft without the blocked language")
    if kb_results is not None and not kb_results:
        actions.append("No knowledge-base article matched; consider writing one")
    return actions


def _customer(sender: Optional[str], verification: Optional[VerificationResult]) -> str:
    customer = verification.customer if verification is not None else None
    email = (customer.email if customer else None) or sender
    name = customer.name if customer else None
    if name and email:
        return f"{name} ({email})"
    return name or email or "Unknown"


def _verification(verification: Optional[VerificationResult]) -> str:
    if verification is None:
        return "not checked"
    text = verification.status.value
    if verification.order_number:
        text += f" (order #{verification.order_number})"
    return text


def _knowledge(kb_results: Sequence[SearchResult]) -> str:
    if not kb_results:
        return "no matching articles"
    titles = [r.document.title for r in kb_results[:MAX_KB_TITLES]]
    return f"{len(kb_results)} article(s) matched: {', '.join(titles)}"
