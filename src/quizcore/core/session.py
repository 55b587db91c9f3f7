"""Session bootstrap and the question/answer flow wired through the managers."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import structlog

from .audio import AudioPlayer, SilentAudio
from .event_bus import EventBus, Subscription
from .event_types import AnswerSelectedPayload, GameEvent, GameStateEvent, PowerUpEvent, PowerUpEventPayload, TeamId
from .powerups import DOUBLE_POINTS, PowerUpManager
from .rules import EngineManagers, RuleEngine
from .schemas import GameConfig, parse_game_config
from .scoring import ScoringManager
from .state import GameStateManager, Phase
from .storage import MemoryStorage, Storage
from .timers import FrameScheduler, TimerManager, TimerStatus
from ..utils.clock import Clock, system_clock

LOGGER = structlog.get_logger(__name__)

QUESTION_TIMER_ID = "question"
DEFAULT_TIME_LIMIT_SECONDS = 30
CORRECT_SOUND = "correct-sound"
INCORRECT_SOUND = "incorrect-sound"


class QuizSession:
    """One quiz session: owns every manager and tears them down together.

    ``init(config)`` is one-shot. The timer, game state and scoring managers
    exist from construction; the power-up manager and rule engine depend on the
    config and are created by ``init``.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        storage: Optional[Storage] = None,
        *,
        clock: Clock = system_clock,
        scheduler: Optional[FrameScheduler] = None,
        audio: Optional[AudioPlayer] = None,
    ) -> None:
        self.bus = event_bus or EventBus()
        self.storage = storage if storage is not None else MemoryStorage()
        self.clock = clock
        self.audio = audio or SilentAudio()
        self.game_state = GameStateManager(self.bus)
        self.timers = TimerManager(self.bus, self.storage, clock=clock, scheduler=scheduler)
        self.scoring = ScoringManager(self.bus, self.storage)
        self.powerups: Optional[PowerUpManager] = None
        self.rules: Optional[RuleEngine] = None
        self.config: Optional[GameConfig] = None

        self._subscriptions: List[Subscription] = []
        self._current_question_id: Optional[str] = None
        self._question_timer_id = QUESTION_TIMER_ID
        self._initialized = False
        self._ended = False
        self._destroyed = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def init(self, config: Union[GameConfig, Dict[str, Any]]) -> None:
        if self._initialized:
            LOGGER.warning("session.already_initialized")
            return
        if self._destroyed:
            LOGGER.warning("session.init_after_destroy")
            return

        self.config = config if isinstance(config, GameConfig) else parse_game_config(config)
        self.game_state.init(self.config.teams)
        self.scoring.init(self.config.teams, self.config.game_mode)

        definitions = self.config.powerups.available_powerups if self.config.powerups.powerups_enabled else []
        self.powerups = PowerUpManager(self.bus, definitions, clock=self.clock)
        self.rules = RuleEngine(
            self.bus,
            self.config.rules,
            EngineManagers(
                game_state=self.game_state,
                scoring=self.scoring,
                timers=self.timers,
                powerups=self.powerups,
                audio=self.audio,
            ),
        )
        self._subscriptions.append(self.bus.on(PowerUpEvent.ACTIVATED, self._apply_powerup_effect))

        self._initialized = True
        self.game_state.set_phase(Phase.READY)
        LOGGER.info(
            "session.initialized",
            quiz_id=self.config.quiz_id,
            game_slug=self.config.game_slug,
            teams=len(self.config.teams),
            mode=self.config.game_mode.type,
        )

    # Game flow

    def start_game(self) -> None:
        if not self._initialized:
            LOGGER.warning("session.not_initialized", action="start_game")
            return
        if self.game_state.set_phase(Phase.PLAYING):
            self.bus.emit(GameStateEvent.GAME_STARTED)

    def end_game(self) -> None:
        if self._ended:
            return
        self._ended = True
        self.timers.stop_all_timers()
        # A rule may already have moved the phase to GAME_OVER.
        self.game_state.set_phase(Phase.GAME_OVER)
        self.bus.emit(GameStateEvent.GAME_ENDED)
        LOGGER.info("session.game_ended", scores=self.scoring.get_all_scores())

    def update(self, delta_ms: float) -> None:
        """Per-frame driver for power-up expiry."""
        if self.powerups is not None:
            self.powerups.update(delta_ms)

    def start_question(self, question_id: str, *, timer_id: str = QUESTION_TIMER_ID) -> None:
        """Create and start the countdown for ``question_id`` from ``intensityTimeLimit``."""

        limit_seconds = self.config.intensity_time_limit if self.config else DEFAULT_TIME_LIMIT_SECONDS
        self._current_question_id = question_id
        self._question_timer_id = timer_id
        self.timers.create_timer(timer_id, limit_seconds * 1000)
        self.timers.on_timer_complete(timer_id, lambda timer: self.handle_time_up(question_id))
        self.timers.start_timer(timer_id)
        LOGGER.info("session.question_started", question_id=question_id, limit_seconds=limit_seconds)

    def submit_answer(
        self,
        question_id: str,
        option_id: Optional[str],
        is_correct: bool,
        *,
        team_id: Optional[TeamId] = None,
    ) -> AnswerSelectedPayload:
        team_id = team_id if team_id is not None else self.game_state.get_active_team_id()
        timer_id = self._question_timer_id
        # Cleared first: a pause that lands on the deadline must not also report a time-up.
        self._current_question_id = None
        remaining_ms = 0.0
        if self.timers.get_timer(timer_id) is not None:
            self.timers.pause_timer(timer_id)
            remaining_ms = self.timers.get_time_remaining(timer_id)

        bonus_active = self._has_double_points(team_id)
        multiplier = self._double_points_multiplier() if bonus_active else 1
        self.audio.play(CORRECT_SOUND if is_correct else INCORRECT_SOUND)
        payload = AnswerSelectedPayload(
            question_id=question_id,
            selected_option_id=option_id,
            is_correct=is_correct,
            team_id=team_id,
            remaining_time_ms=remaining_ms,
            score_multiplier=multiplier,
        )
        LOGGER.info(
            "session.answer_submitted",
            question_id=question_id,
            team_id=team_id,
            correct=is_correct,
            remaining_ms=remaining_ms,
            multiplier=multiplier,
        )
        self.bus.emit(GameEvent.ANSWER_SELECTED, payload)

        # The bonus is spent on this answer.
        if bonus_active and self.powerups is not None and team_id is not None:
            self.powerups.deactivate_by_type_and_target(DOUBLE_POINTS, team_id)
        return payload

    def handle_time_up(self, question_id: str) -> Optional[AnswerSelectedPayload]:
        if self._current_question_id != question_id:
            LOGGER.debug("session.stale_time_up", question_id=question_id)
            return None
        self._current_question_id = None

        team_id = self.game_state.get_active_team_id()
        self.audio.play(INCORRECT_SOUND)
        payload = AnswerSelectedPayload(
            question_id=question_id,
            selected_option_id=None,
            is_correct=False,
            team_id=team_id,
            remaining_time_ms=0,
            score_multiplier=1,
        )
        LOGGER.info("session.time_up", question_id=question_id, team_id=team_id)
        self.bus.emit(GameEvent.ANSWER_SELECTED, payload)
        return payload

    def finish_question(self) -> Optional[TeamId]:
        """Drop the question timer and hand the turn to the next team."""

        if self.timers.get_timer(self._question_timer_id) is not None:
            self.timers.remove_timer(self._question_timer_id)
        return self.game_state.advance_turn()

    # Power-up effects

    def _has_double_points(self, team_id: Optional[TeamId]) -> bool:
        if self.powerups is None or team_id is None:
            return False
        return self.powerups.is_power_up_active_for_target(DOUBLE_POINTS, team_id)

    def _double_points_multiplier(self) -> float:
        if self.powerups is None:
            return 1
        definition = self.powerups.get_powerup_definition(DOUBLE_POINTS)
        multiplier = definition.effect_params.get("multiplier", 2) if definition else 2
        return multiplier if isinstance(multiplier, (int, float)) and multiplier > 0 else 2

    def _apply_powerup_effect(self, payload: PowerUpEventPayload) -> None:
        if self.powerups is None:
            return
        definition = self.powerups.get_powerup_definition(payload.type)
        if definition is None or definition.effect_type != "timer_modifier":
            return
        timer = self.timers.get_timer(self._question_timer_id)
        if timer is None or timer.status not in (TimerStatus.RUNNING, TimerStatus.PAUSED):
            return
        seconds = definition.effect_params.get("amount", 0)
        if isinstance(seconds, (int, float)) and seconds:
            self.timers.add_time(self._question_timer_id, seconds * 1000)

    # Teardown

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True

        if self.rules is not None:
            self.rules.destroy()
        for subscription in self._subscriptions:
            self.bus.off(subscription)
        self._subscriptions.clear()
        self.timers.stop_all_timers()
        if self.powerups is not None:
            self.powerups.destroy()
        self.scoring.destroy()
        self.game_state.destroy()
        self._current_question_id = None
        LOGGER.info("session.destroyed")
