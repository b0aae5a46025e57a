"""Layered user prompt for draft generation.

Sections appear in a fixed order: thread-age warning, customer profile and
support history, verified order data, knowledge-base excerpts, conversation
history, attachment content, then the customer's message and the task.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from langdetect import LangDetectException, detect

from ..orders.schemas import CustomerProfile, OrderSnapshot
from ..retrieval.schemas import SearchResult
from ..threads.schemas import Attachment, Message, MessageDirection, MessageRole, Thread
from .schemas import DraftInput

KB_EXCERPT_CHARS = 500
ATTACHMENT_CHARS = 2000
MAX_RECENT_ORDERS = 5
MAX_PREVIOUS_TICKETS = 3

CONTINUATION_RULES = """### Continue the conversation naturally:
- This is an ongoing conversation: pick up where it left off
- If the customer already provided information, acknowledge it and do not ask again
- If you asked a question and they answered, move forward with that answer
- Never ask the same question twice; only ask for what is still missing

### Vendor responses are authoritative:
Messages from a vendor are answers from the supplier that makes the product.
When a vendor confirms something, relay it as the answer instead of saying you need to check.
"""


def days_between(start: Optional[datetime], end: datetime) -> Optional[int]:
    if start is None:
        return None
    return max((end - start).days, 0)


def thread_age_warning(
    thread_age_days: Optional[int],
    days_since_response: Optional[int],
    *,
    stale_thread_days: int = 7,
    stale_response_days: int = 3,
    created_at: Optional[datetime] = None,
) -> str:
    """Warning for old or neglected threads; empty when neither applies."""
    old = thread_age_days is not None and thread_age_days >= stale_thread_days
    quiet = days_since_response is not None and days_since_response >= stale_response_days
    if not old and not quiet:
        return ""

    lines = ["## THREAD AGE WARNING"]
    if old:
        created = f" (created {created_at:%b %d, %Y})" if created_at else ""
        lines += [
            f"This thread is {thread_age_days} days old{created}.",
            "The customer has been waiting a long time. DO NOT:",
            '- Mention "3-5 business days" or standard processing times',
            "- Give generic responses",
            "- Make excuses about delays",
            "DO:",
            "- Acknowledge the delay sincerely",
            "- Focus on immediate resolution",
            "- Be more apologetic and action-oriented",
        ]
    if quiet:
        if old:
            lines.append(f"Additionally, there has been no response for {days_since_response} days.")
        else:
            lines += [
                f"There has been no response on this thread for {days_since_response} days.",
                "Acknowledge the wait and prioritize resolution.",
            ]
    return "\n".join(lines) + "\n\n"


def customer_section(profile: CustomerProfile, previous_tickets: List[Thread]) -> str:
    customer = profile.customer
    lines = ["## VERIFIED CUSTOMER PROFILE:"]
    if customer.name:
        lines.append(f"- Name: {customer.name}")
    if customer.email:
        lines.append(f"- Email: {customer.email}")
    lines.append(f"- Total Orders: {customer.total_orders}")
    lines.append(f"- Lifetime Value: ${customer.total_spent:,.2f}")
    if profile.likely_product:
        lines.append("")
        lines.append(f"The customer most likely needs help with: **{profile.likely_product}**")
    if profile.recent_orders:
        orders = profile.recent_orders[:MAX_RECENT_ORDERS]
        lines.append("")
        lines.append(f"### ORDER HISTORY ({len(orders)} recent orders):")
        for order in orders:
            placed = f" ({order.created_at:%Y-%m-%d})" if order.created_at else ""
            lines.append(
                f"- #{order.number}: {order.financial_status or 'unknown'} / "
                f"{order.fulfillment_status or 'unknown'}{placed}"
            )
    lines.append(tickets_section(previous_tickets))
    return "\n".join(lines).rstrip() + "\n\n"


def tickets_section(previous_tickets: List[Thread]) -> str:
    if not previous_tickets:
        return ""
    tickets = previous_tickets[:MAX_PREVIOUS_TICKETS]
    lines = ["", f"### SUPPORT HISTORY ({len(tickets)} previous tickets):"]
    for ticket in tickets:
        lines.append(f'- "{ticket.subject}" - {ticket.state.value} ({ticket.created_at:%Y-%m-%d})')
    lines.append("Use this history to avoid repeating past solutions that didn't work.")
    return "\n".join(lines)


def order_section(order: OrderSnapshot) -> str:
    lines = [
        "## VERIFIED ORDER DATA (use this to respond; do not say you will check):",
        f"- Order: #{order.number}",
        f"- Payment Status: {order.financial_status or 'unknown'}",
        f"- Fulfillment Status: {order.fulfillment_status or 'unknown'}",
    ]
    if order.created_at:
        lines.append(f"- Order Date: {order.created_at:%Y-%m-%d}")
    if order.shipping_city or order.shipping_state:
        lines.append(f"- Shipping To: {order.shipping_city or ''}, {order.shipping_state or ''}")
    if order.line_items:
        items = ", ".join(f"{item.title} (x{item.quantity})" for item in order.line_items)
        lines.append(f"- Items: {items}")

    tracked = [t for t in order.tracking if t.number]
    if tracked:
        lines.append("")
        lines.append("### TRACKING INFO (only share if the customer asks about shipping):")
        for tracking in tracked:
            lines.append(f"- Carrier: {tracking.carrier or 'Unknown'}")
            lines.append(f"- Tracking #: {tracking.number}")
            if tracking.url:
                lines.append(f"- Track here: {tracking.url}")
    elif order.is_fulfilled:
        lines.append("")
        lines.append("### NOTE: Order marked as fulfilled but no tracking number on file.")
    else:
        lines.append("")
        lines.append("### NOTE: Order has NOT shipped yet (only mention if asked about shipping).")
    return "\n".join(lines) + "\n\n"


def kb_section(results: List[SearchResult]) -> str:
    if not results:
        return "## Note: No relevant KB articles found for this query.\n\n"
    parts = [
        "## Relevant Knowledge Base Articles:",
        "Cite an article you rely on as [KB: <exact title>].",
        "",
    ]
    for result in results:
        parts.append(
            f"### [KB: {result.document.title}] (relevance: {result.score * 100:.0f}%)"
        )
        if result.chunk is not None:
            parts.append(result.chunk.content)
        else:
            body = result.document.body
            parts.append(body[:KB_EXCERPT_CHARS] + ("..." if len(body) > KB_EXCERPT_CHARS else ""))
        parts.append("")
    return "\n".join(parts) + "\n"


def history_section(messages: List[Message], *, limit: int, max_chars: int) -> str:
    visible = [m for m in messages if m.role is MessageRole.NORMAL][-limit:]
    if not visible:
        return ""
    parts = [
        "## Conversation History:",
        "Read this carefully before responding: this is an ongoing conversation!",
        "",
    ]
    for message in visible:
        speaker = "Customer" if message.direction is MessageDirection.INBOUND else "Agent"
        body = message.body_text.strip()
        if len(body) > max_chars:
            body = body[:max_chars] + "..."
        parts.append(f"{speaker}: {body}")
        parts.append("")
    parts.append(CONTINUATION_RULES)
    return "\n".join(parts) + "\n"


def attachments_section(attachments: List[Attachment]) -> str:
    readable = [a for a in attachments if a.extracted_content]
    if not readable:
        return ""
    parts = ["## Attachment Content:"]
    for attachment in readable:
        content = attachment.extracted_content or ""
        parts.append(f"### {attachment.filename} ({attachment.mime_type})")
        parts.append(content[:ATTACHMENT_CHARS])
        parts.append("")
    parts.append(
        "Use facts from the attachments directly; do not ask for information they already contain."
    )
    return "\n".join(parts) + "\n\n"


def reply_language(text: str) -> Optional[str]:
    try:
        return detect(text) if text.strip() else None
    except LangDetectException:
        return None


def build_user_prompt(
    draft_input: DraftInput,
    *,
    now: datetime,
    agent_name: str = "Lina",
    history_limit: int = 5,
    history_message_chars: int = 1000,
    stale_thread_days: int = 7,
    stale_response_days: int = 3,
) -> str:
    prompt = thread_age_warning(
        days_between(draft_input.thread_created_at, now),
        days_between(draft_input.last_outbound_at, now),
        stale_thread_days=stale_thread_days,
        stale_response_days=stale_response_days,
        created_at=draft_input.thread_created_at,
    )
    if draft_input.customer_profile is not None:
        prompt += customer_section(draft_input.customer_profile, draft_input.previous_tickets)
    elif draft_input.previous_tickets:
        prompt += tickets_section(draft_input.previous_tickets).lstrip() + "\n\n"
    if draft_input.verified_order is not None:
        prompt += order_section(draft_input.verified_order)

    prompt += f"## Classified Intent: {draft_input.intent}\n\n"
    prompt += kb_section(draft_input.kb_results)
    prompt += history_section(
        draft_input.conversation_history,
        limit=history_limit,
        max_chars=history_message_chars,
    )
    prompt += attachments_section(draft_input.attachments)
    prompt += f"## Customer Message:\n{draft_input.customer_message}\n\n"

    language = reply_language(draft_input.customer_message)
    language_line = (
        f"Reply in {language}." if language else "Reply in the same language as the customer."
    )
    prompt += (
        "## Task:\n"
        "Write a natural, conversational reply that continues this conversation.\n"
        "- Lead with the answer, keep it to 2-3 short paragraphs\n"
        "- If order data is above, use it instead of saying you will check\n"
        "- Never promise refunds, replacements or timelines\n"
        f"- {language_line}\n"
        f'- Sign off with "– {agent_name}"'
    )
    return prompt
