"""Question ordering and fair distribution across teams."""

from __future__ import annotations

import random
from typing import Generic, List, Optional, Sequence, TypeVar

import structlog

from .errors import ConfigurationError
from .schemas import QuestionHandlingConfig
from ..utils.rng import build_rng, shuffled

LOGGER = structlog.get_logger(__name__)

T = TypeVar("T")


class QuestionSequencer(Generic[T]):
    """Hands out questions one at a time.

    In ``perTeam`` mode with ``truncate_for_fairness`` the number of questions
    asked is cut down to a multiple of the team count, so every team gets the
    same number of turns.
    """

    def __init__(
        self,
        questions: Sequence[T],
        num_teams: int,
        config: Optional[QuestionHandlingConfig] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not questions:
            raise ConfigurationError("QuestionSequencer requires a non-empty list of questions")
        if num_teams <= 0:
            raise ConfigurationError("QuestionSequencer requires at least one team")

        self.config = config or QuestionHandlingConfig()
        self.num_teams = num_teams
        rng = rng or build_rng()
        self._questions: List[T] = shuffled(rng, questions) if self.config.randomize_order else list(questions)

        if self.config.distribution_mode == "perTeam" and self.config.truncate_for_fairness:
            self._total = num_teams * (len(self._questions) // num_teams)
        else:
            self._total = len(self._questions)
        self._index = 0

        LOGGER.info(
            "sequencer.initialized",
            mode=self.config.distribution_mode,
            randomize=self.config.randomize_order,
            available=len(questions),
            teams=num_teams,
            to_ask=self._total,
        )

    def get_next_question(self) -> Optional[T]:
        if self.is_finished():
            return None
        question = self._questions[self._index]
        self._index += 1
        return question

    def get_next_question_index(self) -> int:
        """Index of the next question in the (shuffled) order, or -1 when finished."""
        return -1 if self.is_finished() else self._index

    def is_finished(self) -> bool:
        return self._index >= self._total

    def get_total_questions_to_ask(self) -> int:
        return self._total

    def get_current_progress_index(self) -> int:
        return self._index
