"""Event names and pydantic payload contracts carried on the event bus."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

TeamId = Union[str, int]


class GameStateEvent(str, Enum):
    """Game state events."""

    PHASE_CHANGED = "gameState:phaseChanged"
    ACTIVE_TEAM_CHANGED = "gameState:activeTeamChanged"
    GAME_STARTED = "gameState:gameStarted"
    GAME_ENDED = "gameState:gameEnded"


class ScoringEvent(str, Enum):
    """Scoring events."""

    SCORE_UPDATED = "scoring:scoreUpdated"
    LIFE_LOST = "scoring:lifeLost"
    TEAM_ELIMINATED = "scoring:teamEliminated"


class TimerEvent(str, Enum):
    """Timer events."""

    STARTED = "timer:started"
    TICK = "timer:tick"
    PAUSED = "timer:paused"
    RESUMED = "timer:resumed"
    STOPPED = "timer:stopped"
    COMPLETED = "timer:completed"
    MODIFIED = "timer:modified"


class PowerUpEvent(str, Enum):
    """Power-up events."""

    ACTIVATED = "powerup:activated"
    DEACTIVATED = "powerup:deactivated"
    EXPIRED = "powerup:expired"


class GameEvent(str, Enum):
    """Input events emitted by the game layer."""

    ANSWER_SELECTED = "game:answerSelected"


ALL_EVENT_NAMES: List[str] = [
    member.value
    for group in (GameStateEvent, ScoringEvent, TimerEvent, PowerUpEvent, GameEvent)
    for member in group
]


class EventPayload(BaseModel):
    """Base payload: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def as_lookup(self) -> Dict[str, Any]:
        """Return the fields that are actually set, keyed by alias *and* field name."""

        by_alias = self.model_dump(by_alias=True, exclude_none=True)
        by_name = self.model_dump(by_alias=False, exclude_none=True)
        merged = dict(by_name)
        merged.update(by_alias)
        return merged


class PhaseChangedPayload(EventPayload):
    previous_phase: str = Field(..., alias="previousPhase")
    current_phase: str = Field(..., alias="currentPhase")


class ActiveTeamChangedPayload(EventPayload):
    previous_team_id: Optional[TeamId] = Field(None, alias="previousTeamId")
    current_team_id: Optional[TeamId] = Field(None, alias="currentTeamId")


class ScoreUpdatedPayload(EventPayload):
    team_id: TeamId = Field(..., alias="teamId")
    previous_score: int = Field(..., alias="previousScore")
    current_score: int = Field(..., alias="currentScore")
    delta: int


class LifeLostPayload(EventPayload):
    team_id: TeamId = Field(..., alias="teamId")
    remaining_lives: int = Field(..., alias="remainingLives")


class TeamEliminatedPayload(EventPayload):
    team_id: TeamId = Field(..., alias="teamId")


class TimerEventPayload(EventPayload):
    timer_id: str = Field(..., alias="timerId")
    elapsed: Optional[float] = None
    remaining: Optional[float] = None
    duration: Optional[float] = None


class PowerUpEventPayload(EventPayload):
    power_up_id: str = Field(..., alias="powerUpId", description="Instance id of the activation")
    type: str
    target_id: TeamId = Field(..., alias="targetId")
    duration: Optional[float] = Field(None, description="Configured duration in seconds, if timed")


class AnswerSelectedPayload(EventPayload):
    """Emitted when an answer is picked or the question timer runs out."""

    question_id: str = Field(..., alias="questionId")
    selected_option_id: Optional[str] = Field(None, alias="selectedOptionId")
    is_correct: bool = Field(..., alias="isCorrect")
    team_id: Optional[TeamId] = Field(None, alias="teamId")
    remaining_time_ms: Optional[float] = Field(None, alias="remainingTimeMs")
    score_multiplier: Optional[float] = Field(None, alias="scoreMultiplier")


def payload_lookup(payload: Any) -> Dict[str, Any]:
    """Flatten any event payload into a property dictionary for rule evaluation."""

    if payload is None:
        return {}
    if isinstance(payload, EventPayload):
        return payload.as_lookup()
    if isinstance(payload, BaseModel):
        return payload.model_dump(exclude_none=True)
    if isinstance(payload, dict):
        return payload
    return {}
