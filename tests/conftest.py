"""
Pytest fixtures for quiz engine tests.
"""

from typing import Any, Dict, List, Tuple

import pytest

from quizcore.config.powerup_catalog import get_standard_powerups
from quizcore.core.event_bus import EventBus
from quizcore.core.powerups import PowerUpManager
from quizcore.core.schemas import TeamConfig
from quizcore.core.scoring import ScoringManager
from quizcore.core.state import GameStateManager
from quizcore.core.storage import MemoryStorage
from quizcore.core.timers import ManualFrameScheduler, TimerManager
from quizcore.utils.clock import ManualClock


class EventLog:
    """Records every emission of the events it is attached to."""

    def __init__(self, bus: EventBus) -> None:
        self.bus = bus
        self.events: List[Tuple[str, Any]] = []

    def watch(self, *names: Any) -> "EventLog":
        for name in names:
            key = name.value if hasattr(name, "value") else name
            self.bus.on(key, lambda payload, key=key: self.events.append((key, payload)))
        return self

    def of(self, name: Any) -> List[Any]:
        key = name.value if hasattr(name, "value") else name
        return [payload for event, payload in self.events if event == key]

    def names(self) -> List[str]:
        return [event for event, _ in self.events]


@pytest.fixture
def bus():
    """Fresh event bus."""
    return EventBus()


@pytest.fixture
def event_log(bus):
    return EventLog(bus)


@pytest.fixture
def clock():
    """Manual millisecond clock starting at a non-zero instant."""
    return ManualClock(start=1_000_000)


@pytest.fixture
def scheduler():
    return ManualFrameScheduler()


@pytest.fixture
def storage():
    return MemoryStorage(namespace="test")


@pytest.fixture
def teams():
    return [
        TeamConfig(id="t1", name="Team One", color="#FF0000"),
        TeamConfig(id="t2", name="Team Two", color="#0000FF"),
    ]


@pytest.fixture
def game_state(bus):
    return GameStateManager(bus)


@pytest.fixture
def timers(bus, storage, clock, scheduler):
    return TimerManager(bus, storage, clock=clock, scheduler=scheduler)


@pytest.fixture
def scoring(bus, storage):
    return ScoringManager(bus, storage)


@pytest.fixture
def powerups(bus, clock):
    """Power-up manager loaded with the standard catalogue."""
    return PowerUpManager(bus, get_standard_powerups(), clock=clock)


@pytest.fixture
def game_config_data() -> Dict[str, Any]:
    """Minimal valid game configuration with one scoring rule."""
    return {
        "quizId": "quiz-1",
        "gameSlug": "multiple-choice",
        "teams": [
            {"id": "t1", "name": "Team One"},
            {"id": "t2", "name": "Team Two"},
        ],
        "gameMode": {"type": "score", "name": "Score"},
        "rules": {
            "rules": [
                {
                    "id": "correct-answer",
                    "triggerEvent": "game:answerSelected",
                    "priority": 10,
                    "conditions": [
                        {"type": "compareState", "property": "isCorrect", "operator": "eq", "value": True}
                    ],
                    "actions": [
                        {"type": "modifyScore", "params": {"target": "payload.teamId", "mode": "fixed", "points": 10}}
                    ],
                }
            ]
        },
        "powerups": {
            "availablePowerups": [p.model_dump(by_alias=True, exclude_none=True) for p in get_standard_powerups()],
            "powerupsEnabled": True,
        },
        "intensityTimeLimit": 30,
    }
