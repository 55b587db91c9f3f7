"""Engine managers, event contracts and session wiring."""

from . import (
    audio,
    errors,
    event_bus,
    event_types,
    powerups,
    rules,
    schemas,
    scoring,
    sequencer,
    session,
    state,
    storage,
    timers,
    transcript,
)

__all__ = [
    "audio",
    "errors",
    "event_bus",
    "event_types",
    "powerups",
    "rules",
    "schemas",
    "scoring",
    "sequencer",
    "session",
    "state",
    "storage",
    "timers",
    "transcript",
]
