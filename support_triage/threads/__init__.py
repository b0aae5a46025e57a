"""Thread lifecycle, persistence and summaries."""

from . import schemas
from .repository import InMemoryThreadRepository, PostgresThreadRepository, ThreadRepository
from .state_machine import Action, ThreadState, decide, next_state, transition_reason

__all__ = [
    "Action",
    "InMemoryThreadRepository",
    "PostgresThreadRepository",
    "ThreadRepository",
    "ThreadState",
    "decide",
    "next_state",
    "schemas",
    "transition_reason",
]
