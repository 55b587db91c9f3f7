"""Per-team score and lives ledgers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Set

import structlog

from .errors import PersistenceError
from .event_bus import EventBus
from .event_types import LifeLostPayload, ScoreUpdatedPayload, ScoringEvent, TeamEliminatedPayload, TeamId
from .schemas import GameModeConfig, LivesModeConfig, TeamConfig
from .storage import Storage

LOGGER = structlog.get_logger(__name__)

SCORES_KEY = "scoring/scores"
LIVES_KEY = "scoring/lives"
ELIMINATED_KEY = "scoring/eliminated"


def _is_team_id(value: Any) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def _ledger_from_pairs(raw: Any) -> Dict[TeamId, int]:
    """Rebuild a persisted ``[[team_id, value], ...]`` ledger, skipping malformed entries."""

    ledger: Dict[TeamId, int] = {}
    if not isinstance(raw, list):
        return ledger
    for entry in raw:
        if not isinstance(entry, list) or len(entry) != 2:
            LOGGER.warning("scoring.invalid_entry", entry=entry)
            continue
        team_id, value = entry
        if not _is_team_id(team_id) or isinstance(value, bool) or not isinstance(value, (int, float)):
            LOGGER.warning("scoring.invalid_entry", entry=entry)
            continue
        ledger[team_id] = int(value)
    return ledger


@dataclass(slots=True)
class TeamScoreData:
    """Read-only view of one team's standing."""

    team_id: TeamId
    score: int
    lives: Optional[int] = None
    max_lives: Optional[int] = None
    display_name: Optional[str] = None
    color: Optional[str] = None
    eliminated: bool = False


class ScoringManager:
    """Owns scores and lives; both are clamped at zero.

    Every actual change is persisted and announced on the bus. Calls that would
    not change anything (non-positive amounts, negative targets) are logged and
    ignored.
    """

    def __init__(self, event_bus: EventBus, storage: Storage) -> None:
        self._bus = event_bus
        self._storage = storage
        self._teams: Dict[TeamId, TeamConfig] = {}
        self._scores: Dict[TeamId, int] = {}
        self._lives: Dict[TeamId, int] = {}
        self._max_lives: Dict[TeamId, int] = {}
        self._eliminated: Set[TeamId] = set()
        self._load()

    # Persistence

    def _load(self) -> None:
        try:
            scores = self._storage.get(SCORES_KEY)
            lives = self._storage.get(LIVES_KEY)
            eliminated = self._storage.get(ELIMINATED_KEY)
        except PersistenceError as exc:
            LOGGER.error("scoring.load_failed", error=str(exc))
            return
        self._scores = _ledger_from_pairs(scores)
        self._lives = _ledger_from_pairs(lives)
        if isinstance(eliminated, list):
            self._eliminated = {team_id for team_id in eliminated if _is_team_id(team_id)}

    def _save(self) -> None:
        try:
            # Pairs rather than objects: JSON object keys would turn integer team ids into strings.
            self._storage.set(SCORES_KEY, [[team_id, score] for team_id, score in self._scores.items()])
            self._storage.set(LIVES_KEY, [[team_id, lives] for team_id, lives in self._lives.items()])
            self._storage.set(ELIMINATED_KEY, list(self._eliminated))
        except PersistenceError as exc:
            LOGGER.error("scoring.save_failed", error=str(exc))

    # Setup

    def init(self, teams: Sequence[TeamConfig], game_mode: GameModeConfig) -> None:
        self._teams = {team.id: team for team in teams}
        self._scores = {}
        self._lives = {}
        self._max_lives = {}
        self._eliminated = set()

        for team in teams:
            self._scores[team.id] = int(team.starting_resources.get("score", 0))
            if isinstance(game_mode, LivesModeConfig):
                initial = team.initial_lives if team.initial_lives is not None else game_mode.initial_lives
                self._lives[team.id] = initial
                self._max_lives[team.id] = game_mode.max_lives if game_mode.max_lives is not None else initial

        self._save()
        LOGGER.info("scoring.initialized", teams=len(self._teams), mode=game_mode.type)

    # Scores

    def _apply_score(self, team_id: TeamId, new_score: int) -> int:
        previous = self.get_score(team_id)
        self._scores[team_id] = new_score
        self._save()
        LOGGER.debug("scoring.score_updated", team_id=team_id, previous=previous, current=new_score)
        self._bus.emit(
            ScoringEvent.SCORE_UPDATED,
            ScoreUpdatedPayload(team_id=team_id, previous_score=previous, current_score=new_score, delta=new_score - previous),
        )
        return new_score

    def add_score(self, team_id: TeamId, points: int) -> int:
        if points <= 0:
            LOGGER.warning("scoring.non_positive_points", team_id=team_id, points=points, action="add")
            return self.get_score(team_id)
        return self._apply_score(team_id, self.get_score(team_id) + points)

    def subtract_score(self, team_id: TeamId, points: int) -> int:
        if points <= 0:
            LOGGER.warning("scoring.non_positive_points", team_id=team_id, points=points, action="subtract")
            return self.get_score(team_id)
        return self._apply_score(team_id, max(0, self.get_score(team_id) - points))

    def set_score(self, team_id: TeamId, score: int) -> int:
        if score < 0:
            LOGGER.warning("scoring.negative_score_rejected", team_id=team_id, score=score)
            return self.get_score(team_id)
        return self._apply_score(team_id, score)

    def get_score(self, team_id: TeamId) -> int:
        return self._scores.get(team_id, 0)

    def get_all_scores(self) -> Dict[TeamId, int]:
        return dict(self._scores)

    def reset_score(self, team_id: TeamId) -> None:
        self.set_score(team_id, 0)

    def reset_all(self) -> None:
        for team_id in list(self._scores):
            self.reset_score(team_id)

    # Lives

    def get_lives(self, team_id: TeamId) -> int:
        return self._lives.get(team_id, 0)

    def get_max_lives(self, team_id: TeamId) -> int:
        """Cap for the team's lives; 0 means uncapped."""
        return self._max_lives.get(team_id, 0)

    def get_all_lives(self) -> Dict[TeamId, int]:
        return dict(self._lives)

    def set_lives(self, team_id: TeamId, lives: int) -> int:
        if lives < 0:
            LOGGER.warning("scoring.negative_lives_rejected", team_id=team_id, lives=lives)
            return self.get_lives(team_id)

        previous = self.get_lives(team_id)
        cap = self.get_max_lives(team_id)
        new_lives = min(lives, cap) if cap > 0 else lives
        tracked = team_id in self._lives
        if tracked and new_lives == previous:
            return previous

        self._lives[team_id] = new_lives
        if new_lives == 0:
            self._eliminated.add(team_id)
        else:
            self._eliminated.discard(team_id)
        self._save()

        LOGGER.debug("scoring.lives_updated", team_id=team_id, previous=previous, current=new_lives)
        self._bus.emit(ScoringEvent.LIFE_LOST, LifeLostPayload(team_id=team_id, remaining_lives=new_lives))
        if new_lives == 0 and (previous > 0 or not tracked):
            LOGGER.info("scoring.team_eliminated", team_id=team_id)
            self._bus.emit(ScoringEvent.TEAM_ELIMINATED, TeamEliminatedPayload(team_id=team_id))
        return new_lives

    def add_lives(self, team_id: TeamId, count: int) -> int:
        if count <= 0:
            LOGGER.warning("scoring.non_positive_lives", team_id=team_id, count=count, action="add")
            return self.get_lives(team_id)
        return self.set_lives(team_id, self.get_lives(team_id) + count)

    def remove_lives(self, team_id: TeamId, count: int) -> int:
        if count <= 0:
            LOGGER.warning("scoring.non_positive_lives", team_id=team_id, count=count, action="remove")
            return self.get_lives(team_id)
        return self.set_lives(team_id, max(0, self.get_lives(team_id) - count))

    def is_team_eliminated(self, team_id: TeamId) -> bool:
        return team_id in self._eliminated

    def get_eliminated_teams(self) -> List[TeamId]:
        return [team_id for team_id in self._lives if team_id in self._eliminated]

    def is_game_over(self, team_id: Optional[TeamId] = None) -> bool:
        """Whether ``team_id`` (or, without an argument, any team) is out of lives.

        Only teams with a lives ledger count, so score-mode sessions never end here.
        """

        if team_id is not None:
            return team_id in self._lives and self._lives[team_id] == 0
        return any(lives == 0 for lives in self._lives.values())

    # Views

    def get_team_data(self, team_id: TeamId) -> Optional[TeamScoreData]:
        team = self._teams.get(team_id)
        if team is None:
            return None
        return TeamScoreData(
            team_id=team_id,
            score=self.get_score(team_id),
            lives=self._lives.get(team_id),
            max_lives=self._max_lives.get(team_id),
            display_name=team.name,
            color=team.color,
            eliminated=self.is_team_eliminated(team_id),
        )

    def get_all_team_data(self) -> List[TeamScoreData]:
        return [data for data in (self.get_team_data(team_id) for team_id in self._teams) if data is not None]

    def destroy(self) -> None:
        self._teams.clear()
        self._scores.clear()
        self._lives.clear()
        self._max_lives.clear()
        self._eliminated.clear()
        for key in (SCORES_KEY, LIVES_KEY, ELIMINATED_KEY):
            try:
                self._storage.remove(key)
            except PersistenceError as exc:
                LOGGER.error("scoring.remove_failed", key=key, error=str(exc))
        LOGGER.info("scoring.destroyed")


def describe_scores(manager: ScoringManager) -> Dict[str, Any]:
    """Summarise standings as plain JSON-friendly data."""

    return {
        str(data.team_id): {"score": data.score, "lives": data.lives, "eliminated": data.eliminated}
        for data in manager.get_all_team_data()
    }
