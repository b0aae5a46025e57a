"""Thread lifecycle state machine.

``decide`` is the single, side-effect free rule table mapping the current
state, the action chosen upstream, the intent, the policy outcome and the
info-completeness flag to the effective action and the next state.
``next_state`` and ``transition_reason`` are thin views over it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..intents import taxonomy


class ThreadState(str, Enum):
    """Lifecycle states of a support thread."""

    NEW = "NEW"
    AWAITING_INFO = "AWAITING_INFO"
    IN_PROGRESS = "IN_PROGRESS"
    ESCALATED = "ESCALATED"
    HUMAN_HANDLING = "HUMAN_HANDLING"
    RESOLVED = "RESOLVED"


class Action(str, Enum):
    """What the pipeline decided to do with an inbound message."""

    NO_REPLY = "NO_REPLY"
    ASK_CLARIFYING_QUESTIONS = "ASK_CLARIFYING_QUESTIONS"
    SEND_PREAPPROVED_MACRO = "SEND_PREAPPROVED_MACRO"
    ESCALATE = "ESCALATE"
    ESCALATE_WITH_DRAFT = "ESCALATE_WITH_DRAFT"


# States owned by a human; automated replies never leave them.
ESCALATED_FAMILY = frozenset({ThreadState.ESCALATED, ThreadState.HUMAN_HANDLING})

# Left only through an explicit human release or manual transition.
ABSORBING_STATES = frozenset({ThreadState.ESCALATED, ThreadState.RESOLVED})

_ESCALATING_ACTIONS = frozenset({Action.ESCALATE, Action.ESCALATE_WITH_DRAFT})


@dataclass(frozen=True)
class StateMetadata:
    label: str
    description: str
    priority: int


STATE_METADATA: dict[ThreadState, StateMetadata] = {
    ThreadState.NEW: StateMetadata("New", "Thread just created, not yet processed", 1),
    ThreadState.AWAITING_INFO: StateMetadata(
        "Awaiting Info", "Waiting for the customer to provide required information", 2
    ),
    ThreadState.IN_PROGRESS: StateMetadata(
        "In Progress", "Actively being handled by the agent", 3
    ),
    ThreadState.ESCALATED: StateMetadata(
        "Escalated", "Requires human review before any reply", 0
    ),
    ThreadState.HUMAN_HANDLING: StateMetadata(
        "Human Handling", "A human is handling the thread; automation is paused", 0
    ),
    ThreadState.RESOLVED: StateMetadata("Resolved", "Issue resolved, thread closed", 4),
}

# Transitions an operator may apply by hand. HUMAN_HANDLING is entered and
# left only through the observation controller.
ALLOWED_TRANSITIONS: dict[ThreadState, frozenset[ThreadState]] = {
    ThreadState.NEW: frozenset(
        {
            ThreadState.AWAITING_INFO,
            ThreadState.IN_PROGRESS,
            ThreadState.ESCALATED,
            ThreadState.RESOLVED,
        }
    ),
    ThreadState.AWAITING_INFO: frozenset(
        {ThreadState.IN_PROGRESS, ThreadState.ESCALATED, ThreadState.RESOLVED}
    ),
    ThreadState.IN_PROGRESS: frozenset(
        {ThreadState.AWAITING_INFO, ThreadState.ESCALATED, ThreadState.RESOLVED}
    ),
    ThreadState.ESCALATED: frozenset({ThreadState.IN_PROGRESS, ThreadState.RESOLVED}),
    ThreadState.RESOLVED: frozenset({ThreadState.IN_PROGRESS}),
    ThreadState.HUMAN_HANDLING: frozenset(),
}

_CLOSING_REASONS = {
    taxonomy.THANK_YOU_CLOSE: "Customer sent thank you message",
    taxonomy.VENDOR_SPAM: "Vendor solicitation closed without reply",
    taxonomy.AUTOMATED_EMAIL: "Automated notification closed without reply",
}

_ESCALATION_REASONS = {
    taxonomy.CHARGEBACK_THREAT: "Chargeback threat detected - requires immediate attention",
    taxonomy.LEGAL_SAFETY_RISK: "Legal/safety risk detected - requires human review",
}


@dataclass(frozen=True)
class Transition:
    """Outcome of one state-machine evaluation."""

    previous_state: ThreadState
    state: ThreadState
    action: Action
    reason: str

    @property
    def changed(self) -> bool:
        return self.previous_state is not self.state

    def as_payload(self) -> dict[str, str]:
        return {
            "from": self.previous_state.value,
            "to": self.state.value,
            "reason": self.reason,
        }


def decide(
    current_state: ThreadState | str,
    action: Action | str,
    intent: str,
    policy_blocked: bool = False,
    missing_required_info: bool = False,
) -> Transition:
    """Apply the lifecycle rules in precedence order."""

    current = ThreadState(current_state)
    chosen = Action(action)

    def _result(state: ThreadState, effective: Action, reason: str) -> Transition:
        return Transition(current, state, effective, reason)

    if current is ThreadState.HUMAN_HANDLING:
        return _result(
            ThreadState.HUMAN_HANDLING,
            Action.NO_REPLY,
            "Human handling in progress - automation paused",
        )

    if policy_blocked:
        return _result(
            ThreadState.ESCALATED,
            Action.ESCALATE_WITH_DRAFT,
            "Draft contained blocked policy language",
        )

    if intent in taxonomy.ESCALATION_INTENTS or chosen in _ESCALATING_ACTIONS:
        effective = chosen if chosen in _ESCALATING_ACTIONS else Action.ESCALATE_WITH_DRAFT
        reason = _ESCALATION_REASONS.get(intent, "Escalation required before any automated reply")
        return _result(ThreadState.ESCALATED, effective, reason)

    if intent in taxonomy.CLOSING_INTENTS:
        effective = Action.NO_REPLY
    elif missing_required_info:
        effective = Action.ASK_CLARIFYING_QUESTIONS
    else:
        effective = chosen

    if current in ABSORBING_STATES:
        label = STATE_METADATA[current].label
        return _result(current, effective, f"Thread remains {label} until released by a human")

    if intent in taxonomy.CLOSING_INTENTS:
        return _result(ThreadState.RESOLVED, effective, _CLOSING_REASONS[intent])

    if missing_required_info:
        return _result(
            ThreadState.AWAITING_INFO,
            effective,
            "Missing required information from customer",
        )

    if current is ThreadState.AWAITING_INFO:
        return _result(
            ThreadState.IN_PROGRESS, effective, "Customer provided additional information"
        )

    if current is ThreadState.IN_PROGRESS:
        return _result(ThreadState.IN_PROGRESS, effective, "Thread remains In Progress")

    return _result(
        ThreadState.IN_PROGRESS,
        effective,
        f"Transitioned from {current.value} to {ThreadState.IN_PROGRESS.value}",
    )


def next_state(
    current_state: ThreadState | str,
    action: Action | str,
    intent: str,
    policy_blocked: bool = False,
    missing_required_info: bool = False,
) -> ThreadState:
    return decide(current_state, action, intent, policy_blocked, missing_required_info).state


def transition_reason(
    current_state: ThreadState | str,
    action: Action | str,
    intent: str,
    policy_blocked: bool = False,
    missing_required_info: bool = False,
) -> str:
    return decide(current_state, action, intent, policy_blocked, missing_required_info).reason


def is_valid_transition(from_state: ThreadState | str, to_state: ThreadState | str) -> bool:
    """Return whether an operator may move a thread from ``from_state`` to ``to_state``."""

    return ThreadState(to_state) in ALLOWED_TRANSITIONS[ThreadState(from_state)]


def state_label(state: ThreadState | str) -> str:
    return STATE_METADATA[ThreadState(state)].label
