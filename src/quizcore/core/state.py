"""Game phase state machine and active-team pointer."""

from __future__ import annotations

from enum import Enum
from typing import Callable, List, Optional, Sequence

import structlog

from .event_bus import EventBus
from .event_types import ActiveTeamChangedPayload, GameStateEvent, PhaseChangedPayload, TeamId
from .schemas import TeamConfig

LOGGER = structlog.get_logger(__name__)


class Phase(str, Enum):
    """Coarse stages of a session."""

    LOADING = "loading"
    SETUP = "setup"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ROUND_OVER = "round_over"
    GAME_OVER = "game_over"
    RESULTS = "results"
    CLEANUP = "cleanup"


TransitionValidator = Callable[[Phase, Phase], bool]


def allow_any_transition(previous: Phase, current: Phase) -> bool:
    """Default validator: every transition is accepted."""
    return True


def parse_phase(value: object) -> Optional[Phase]:
    """Resolve a phase from its value (``"playing"``) or name (``"PLAYING"``)."""

    if isinstance(value, Phase):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Phase(value)
    except ValueError:
        return Phase.__members__.get(value.upper())


class GameStateManager:
    """Owns the current phase and which team is taking its turn."""

    def __init__(self, event_bus: EventBus, *, validator: TransitionValidator = allow_any_transition) -> None:
        self._bus = event_bus
        self._validator = validator
        self._phase = Phase.LOADING
        self._active_team_id: Optional[TeamId] = None
        self._teams: List[TeamConfig] = []

    def init(self, teams: Sequence[TeamConfig]) -> None:
        self._teams = list(teams)
        self._active_team_id = self._teams[0].id if self._teams else None
        # Re-initialising from SETUP must still announce the transition.
        self._phase = Phase.LOADING
        self.set_phase(Phase.SETUP, force=True)
        LOGGER.info("game_state.initialized", teams=len(self._teams), phase=self._phase.value)

    def set_validator(self, validator: TransitionValidator) -> None:
        self._validator = validator

    def set_phase(self, new_phase: Phase, force: bool = False) -> bool:
        old_phase = self._phase
        if new_phase == old_phase:
            return False

        if not force and not self._validator(old_phase, new_phase):
            LOGGER.warning("game_state.invalid_transition", previous=old_phase.value, requested=new_phase.value)
            return False

        self._phase = new_phase
        LOGGER.info("game_state.phase_changed", previous=old_phase.value, current=new_phase.value)
        self._bus.emit(
            GameStateEvent.PHASE_CHANGED,
            PhaseChangedPayload(previous_phase=old_phase.value, current_phase=new_phase.value),
        )
        return True

    def get_current_phase(self) -> Phase:
        return self._phase

    def is_phase(self, *phases: Phase) -> bool:
        return self._phase in phases

    def set_active_team(self, team_id: Optional[TeamId]) -> None:
        old_team_id = self._active_team_id
        if team_id == old_team_id:
            return

        if team_id is not None and not any(team.id == team_id for team in self._teams):
            LOGGER.warning("game_state.unknown_team", team_id=team_id)
            return

        self._active_team_id = team_id
        LOGGER.info("game_state.active_team_changed", previous=old_team_id, current=team_id)
        self._bus.emit(
            GameStateEvent.ACTIVE_TEAM_CHANGED,
            ActiveTeamChangedPayload(previous_team_id=old_team_id, current_team_id=team_id),
        )

    def advance_turn(self) -> Optional[TeamId]:
        """Hand the turn to the next team in roster order and return its id."""

        if not self._teams:
            return None
        ids = [team.id for team in self._teams]
        if self._active_team_id in ids:
            next_index = (ids.index(self._active_team_id) + 1) % len(ids)
        else:
            next_index = 0
        self.set_active_team(ids[next_index])
        return self._active_team_id

    def get_active_team_id(self) -> Optional[TeamId]:
        return self._active_team_id

    def get_active_team(self) -> Optional[TeamConfig]:
        if self._active_team_id is None:
            return None
        return next((team for team in self._teams if team.id == self._active_team_id), None)

    def get_teams(self) -> List[TeamConfig]:
        return list(self._teams)

    def destroy(self) -> None:
        if self._phase == Phase.CLEANUP and not self._teams:
            return
        LOGGER.info("game_state.destroyed")
        self.set_phase(Phase.CLEANUP, force=True)
        self._active_team_id = None
        self._teams = []
