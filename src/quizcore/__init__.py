"""Event-driven logic core for team-based quiz games."""

from . import core
from .core import event_bus, event_types, rules, schemas, session, state, timers
from .core.event_bus import EventBus, Subscription
from .core.session import QuizSession

__all__ = [
    "core",
    "event_bus",
    "event_types",
    "rules",
    "schemas",
    "session",
    "state",
    "timers",
    "EventBus",
    "QuizSession",
    "Subscription",
]
