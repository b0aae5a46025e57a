"""Human intervention detection and observation mode."""

from .observation import ObservationController, signal_type_for
from .repository import (
    InMemoryObservationRepository,
    ObservationRepository,
    PostgresObservationRepository,
)
from .schemas import (
    InterventionSignal,
    Observation,
    ObservationResolution,
    ObservedMessage,
    OutboundMessage,
    ResolutionType,
    SignalType,
)

__all__ = [
    "InMemoryObservationRepository",
    "InterventionSignal",
    "Observation",
    "ObservationController",
    "ObservationRepository",
    "ObservationResolution",
    "ObservedMessage",
    "OutboundMessage",
    "PostgresObservationRepository",
    "ResolutionType",
    "SignalType",
    "signal_type_for",
]
