"""Declarative rule engine.

Rules are configuration data: a trigger event name, a list of conditions that
must all hold, and a list of actions to run against the managers. The engine
subscribes once per distinct trigger and dispatches matching rules in
priority order.

Example rule, as it appears in a game config::

    {
        "id": "correct-answer",
        "triggerEvent": "game:answerSelected",
        "priority": 10,
        "conditions": [{"type": "compareState", "property": "isCorrect", "operator": "eq", "value": true}],
        "actions": [{"type": "modifyScore", "params": {"target": "payload.teamId", "points": 10}}]
    }
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from .audio import AudioPlayer
from .errors import EvaluationError
from .event_bus import EventBus, Subscription
from .event_types import TeamId, payload_lookup
from .powerups import PowerUpManager
from .schemas import ActionDefinition, ConditionDefinition, RuleConfig, RuleDefinition
from .scoring import ScoringManager
from .state import GameStateManager, parse_phase
from .timers import TimerManager, TimerStatus

LOGGER = structlog.get_logger(__name__)

PAYLOAD_TEAM_REF = "payload.teamId"


class ConditionType(str, Enum):
    COMPARE_STATE = "compareState"
    TIMER_CHECK = "timerCheck"
    CHECK_POWERUP = "checkPowerup"


class ActionType(str, Enum):
    CHANGE_PHASE = "changePhase"
    MODIFY_SCORE = "modifyScore"
    MODIFY_LIVES = "modifyLives"
    START_TIMER = "startTimer"
    ACTIVATE_POWERUP = "activatePowerup"
    DEACTIVATE_POWERUP = "deactivatePowerup"
    PLAY_SOUND = "playSound"


class Operator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    CONTAINS = "contains"


@dataclass(slots=True)
class EngineManagers:
    """Collaborators the rule engine acts on. Missing ones make their actions fail."""

    game_state: Optional[GameStateManager] = None
    scoring: Optional[ScoringManager] = None
    timers: Optional[TimerManager] = None
    powerups: Optional[PowerUpManager] = None
    audio: Optional[AudioPlayer] = None


@dataclass(slots=True)
class RuleContext:
    event_name: str
    payload: Any
    lookup: Dict[str, Any] = field(default_factory=dict)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _values_equal(actual: Any, expected: Any) -> bool:
    # True == 1 in Python; a boolean only ever equals another boolean here.
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def compare_values(actual: Any, operator: Union[Operator, str], expected: Any) -> bool:
    """Apply a rule operator. Type mismatches and unknown operators are ``False``.

    >>> compare_values(5, "gt", 3)
    True
    >>> compare_values("5", "gt", 3)
    False
    >>> compare_values(True, "eq", 1)
    False
    >>> compare_values("double_points", "contains", "double")
    True
    """

    try:
        op = Operator(operator)
    except ValueError:
        LOGGER.warning("rules.unknown_operator", operator=operator)
        return False

    if op is Operator.EQ:
        return _values_equal(actual, expected)
    if op is Operator.NE:
        return not _values_equal(actual, expected)
    if op is Operator.CONTAINS:
        return isinstance(actual, str) and isinstance(expected, str) and expected in actual
    if not (_is_number(actual) and _is_number(expected)):
        return False
    if op is Operator.GT:
        return actual > expected
    if op is Operator.LT:
        return actual < expected
    if op is Operator.GTE:
        return actual >= expected
    return actual <= expected


def _load_rule_definitions(rules: Union[RuleConfig, Iterable[Union[RuleDefinition, Mapping[str, Any]]], None]) -> List[RuleDefinition]:
    if rules is None:
        return []
    items = rules.rules if isinstance(rules, RuleConfig) else rules
    loaded: List[RuleDefinition] = []
    for index, raw in enumerate(items):
        if isinstance(raw, RuleDefinition):
            rule = raw
        else:
            try:
                rule = RuleDefinition.model_validate(raw)
            except ValidationError as exc:
                LOGGER.warning("rules.invalid_definition", index=index, error=str(exc))
                continue
        if not rule.id or not rule.trigger_event:
            LOGGER.warning("rules.incomplete_definition", index=index, rule_id=rule.id or None)
            continue
        loaded.append(rule)
    # sorted() is stable: equal priorities keep configuration order.
    return sorted(loaded, key=lambda rule: -rule.priority)


class RuleEngine:
    """Matches trigger events against loaded rules and runs their actions."""

    def __init__(
        self,
        event_bus: EventBus,
        rules: Union[RuleConfig, Iterable[Union[RuleDefinition, Mapping[str, Any]]], None],
        managers: EngineManagers,
    ) -> None:
        self._bus = event_bus
        self._managers = managers
        self._enabled = True
        self._rules = _load_rule_definitions(rules)
        self._subscriptions: List[Subscription] = []
        self._register_listeners()
        LOGGER.info(
            "rules.initialized",
            count=len(self._rules),
            rules=[f"{rule.id} (priority {rule.priority}, {rule.trigger_event})" for rule in self._rules],
        )

    def _register_listeners(self) -> None:
        for trigger in dict.fromkeys(rule.trigger_event for rule in self._rules):
            self._subscriptions.append(
                self._bus.on(trigger, lambda payload, name=trigger: self._handle_event(name, payload))
            )

    # Public surface

    @property
    def rules(self) -> List[RuleDefinition]:
        return list(self._rules)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        LOGGER.info("rules.enabled_changed", enabled=enabled)

    def destroy(self) -> None:
        """Drop this engine's own subscriptions; other listeners stay registered."""

        for subscription in self._subscriptions:
            self._bus.off(subscription)
        self._subscriptions.clear()
        self._rules = []
        LOGGER.info("rules.destroyed")

    # Dispatch

    def _handle_event(self, event_name: str, payload: Any) -> None:
        if not self._enabled:
            return
        applicable = [rule for rule in self._rules if rule.enabled and rule.trigger_event == event_name]
        if not applicable:
            return

        LOGGER.debug("rules.triggered", event_name=event_name, count=len(applicable))
        context = RuleContext(event_name=event_name, payload=payload, lookup=payload_lookup(payload))
        for rule in applicable:
            self._process_rule(rule, context)

    def _process_rule(self, rule: RuleDefinition, context: RuleContext) -> None:
        for condition in rule.conditions:
            if not self._evaluate_condition(condition, context):
                LOGGER.debug("rules.condition_failed", rule_id=rule.id, condition=condition.type)
                return
        LOGGER.debug("rules.conditions_met", rule_id=rule.id)
        for action in rule.actions:
            self._execute_action(rule, action, context)

    def _evaluate_condition(self, condition: ConditionDefinition, context: RuleContext) -> bool:
        try:
            condition_type = ConditionType(condition.type)
        except ValueError:
            LOGGER.warning("rules.unknown_condition", condition=condition.type)
            return False
        try:
            return _CONDITION_HANDLERS[condition_type](self, condition, context)
        except Exception as exc:
            LOGGER.error(
                "rules.condition_error",
                condition=condition.type,
                property=condition.property,
                error=str(exc),
            )
            return False

    def _execute_action(self, rule: RuleDefinition, action: ActionDefinition, context: RuleContext) -> None:
        try:
            action_type = ActionType(action.type)
        except ValueError:
            LOGGER.warning("rules.unknown_action", rule_id=rule.id, action=action.type)
            return
        try:
            _ACTION_HANDLERS[action_type](self, action.params or {}, context)
        except Exception as exc:
            LOGGER.error("rules.action_failed", rule_id=rule.id, action=action.type, error=str(exc))

    # Conditions

    def _compare_state(self, condition: ConditionDefinition, context: RuleContext) -> bool:
        if condition.property not in context.lookup:
            # Fallback to wider game state is an open extension point.
            LOGGER.warning("rules.property_missing", property=condition.property, event_name=context.event_name)
            return False
        actual = context.lookup[condition.property]
        result = compare_values(actual, condition.operator, condition.value)
        LOGGER.debug(
            "rules.compare_state",
            property=condition.property,
            actual=actual,
            operator=condition.operator,
            expected=condition.value,
            result=result,
        )
        return result

    def _timer_check(self, condition: ConditionDefinition, context: RuleContext) -> bool:
        timers = self._managers.timers
        if timers is None:
            raise EvaluationError("timer manager not available")
        timer = timers.get_timer(condition.property)
        if timer is None:
            LOGGER.warning("rules.timer_missing", timer_id=condition.property)
            return False

        if condition.operator in (Operator.EQ.value, Operator.NE.value):
            expected = condition.value.value if isinstance(condition.value, TimerStatus) else condition.value
            return compare_values(timer.status.value, condition.operator, expected)
        if condition.operator in (Operator.GT.value, Operator.LT.value, Operator.GTE.value, Operator.LTE.value):
            return compare_values(timers.get_time_remaining(condition.property), condition.operator, condition.value)

        LOGGER.warning("rules.unsupported_operator", condition=condition.type, operator=condition.operator)
        return False

    def _check_powerup(self, condition: ConditionDefinition, context: RuleContext) -> bool:
        powerups = self._managers.powerups
        if powerups is None:
            raise EvaluationError("power-up manager not available")

        target = condition.value
        if target == PAYLOAD_TEAM_REF:
            target = context.lookup.get("teamId")
        if target is None:
            LOGGER.warning("rules.powerup_target_missing", type_id=condition.property)
            return False

        active = powerups.is_power_up_active_for_target(condition.property, target)
        if condition.operator == Operator.EQ.value:
            return active
        if condition.operator == Operator.NE.value:
            return not active
        LOGGER.warning("rules.unsupported_operator", condition=condition.type, operator=condition.operator)
        return False

    # Actions

    def _resolve_target(self, value: Any, context: RuleContext) -> TeamId:
        if value == PAYLOAD_TEAM_REF:
            value = context.lookup.get("teamId")
            if value is None:
                raise EvaluationError("target is 'payload.teamId' but the event carries no teamId")
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise EvaluationError(f"invalid target {value!r}")
        return value

    def _score_multiplier(self, context: RuleContext) -> float:
        multiplier = context.lookup.get("scoreMultiplier")
        if _is_number(multiplier) and multiplier > 0:
            return multiplier
        return 1

    def _change_phase(self, params: Dict[str, Any], context: RuleContext) -> None:
        game_state = self._managers.game_state
        if game_state is None:
            raise EvaluationError("game state manager not available")
        phase = parse_phase(params.get("newPhase"))
        if phase is None:
            raise EvaluationError(f"invalid newPhase {params.get('newPhase')!r}")
        game_state.set_phase(phase)

    def _modify_score(self, params: Dict[str, Any], context: RuleContext) -> None:
        scoring = self._managers.scoring
        if scoring is None:
            raise EvaluationError("scoring manager not available")
        team_id = self._resolve_target(params.get("target"), context)
        multiplier = self._score_multiplier(context)
        mode = params.get("mode") or "fixed"

        if mode == "progressive":
            per_second = params.get("pointsPerSecond")
            if not _is_number(per_second):
                raise EvaluationError("progressive modifyScore requires numeric 'pointsPerSecond'")
            remaining_ms = context.lookup.get("remainingTimeMs")
            if not _is_number(remaining_ms) or remaining_ms <= 0:
                LOGGER.info("rules.progressive_no_time", team_id=team_id, remaining_ms=remaining_ms)
                return
            points = int(round(math.ceil(remaining_ms / 1000) * per_second * multiplier))
            LOGGER.debug("rules.progressive_score", team_id=team_id, points=points, multiplier=multiplier)
            if points > 0:
                scoring.add_score(team_id, points)
            return

        if mode != "fixed":
            raise EvaluationError(f"unknown modifyScore mode {mode!r}")
        base = params.get("points")
        if not _is_number(base):
            raise EvaluationError("fixed modifyScore requires numeric 'points'")
        points = int(round(base * multiplier))
        LOGGER.debug("rules.fixed_score", team_id=team_id, points=points, multiplier=multiplier)
        if points > 0:
            scoring.add_score(team_id, points)
        elif points < 0:
            scoring.subtract_score(team_id, -points)

    def _modify_lives(self, params: Dict[str, Any], context: RuleContext) -> None:
        scoring = self._managers.scoring
        if scoring is None:
            raise EvaluationError("scoring manager not available")
        team_id = self._resolve_target(params.get("target"), context)
        amount = params.get("amount")
        if not _is_number(amount) or int(amount) != amount:
            raise EvaluationError("modifyLives requires an integer 'amount'")
        if amount > 0:
            scoring.add_lives(team_id, int(amount))
        elif amount < 0:
            scoring.remove_lives(team_id, int(-amount))

    def _start_timer(self, params: Dict[str, Any], context: RuleContext) -> None:
        timers = self._managers.timers
        if timers is None:
            raise EvaluationError("timer manager not available")
        timer_id = params.get("timerId")
        duration = params.get("duration")
        if not isinstance(timer_id, str) or not _is_number(duration):
            raise EvaluationError("startTimer requires string 'timerId' and numeric 'duration'")
        if timers.get_timer(timer_id) is None:
            timers.create_timer(timer_id, duration)
        timers.start_timer(timer_id)

    def _powerup_target(self, params: Dict[str, Any], context: RuleContext) -> TeamId:
        if params.get("targetId") is not None:
            return self._resolve_target(params["targetId"], context)
        payload_team = context.lookup.get("teamId")
        if payload_team is not None:
            return self._resolve_target(payload_team, context)
        game_state = self._managers.game_state
        active_team = game_state.get_active_team_id() if game_state is not None else None
        if active_team is None:
            raise EvaluationError("no targetId given and no team to default to")
        return active_team

    def _activate_powerup(self, params: Dict[str, Any], context: RuleContext) -> None:
        powerups = self._managers.powerups
        if powerups is None:
            raise EvaluationError("power-up manager not available")
        type_id = params.get("typeId")
        if not isinstance(type_id, str) or not type_id:
            raise EvaluationError("activatePowerup requires string 'typeId'")
        powerups.activate_power_up(type_id, self._powerup_target(params, context))

    def _deactivate_powerup(self, params: Dict[str, Any], context: RuleContext) -> None:
        powerups = self._managers.powerups
        if powerups is None:
            raise EvaluationError("power-up manager not available")
        type_id = params.get("typeId")
        if not isinstance(type_id, str) or not type_id:
            raise EvaluationError("deactivatePowerup requires string 'typeId'")
        powerups.deactivate_by_type_and_target(type_id, self._powerup_target(params, context))

    def _play_sound(self, params: Dict[str, Any], context: RuleContext) -> None:
        audio = self._managers.audio
        if audio is None:
            raise EvaluationError("audio player not available")
        sound_id = params.get("soundId")
        if not isinstance(sound_id, str):
            raise EvaluationError("playSound requires string 'soundId'")
        audio.play(sound_id)


ConditionHandler = Callable[[RuleEngine, ConditionDefinition, RuleContext], bool]
ActionHandler = Callable[[RuleEngine, Dict[str, Any], RuleContext], None]

_CONDITION_HANDLERS: Dict[ConditionType, ConditionHandler] = {
    ConditionType.COMPARE_STATE: RuleEngine._compare_state,
    ConditionType.TIMER_CHECK: RuleEngine._timer_check,
    ConditionType.CHECK_POWERUP: RuleEngine._check_powerup,
}

_ACTION_HANDLERS: Dict[ActionType, ActionHandler] = {
    ActionType.CHANGE_PHASE: RuleEngine._change_phase,
    ActionType.MODIFY_SCORE: RuleEngine._modify_score,
    ActionType.MODIFY_LIVES: RuleEngine._modify_lives,
    ActionType.START_TIMER: RuleEngine._start_timer,
    ActionType.ACTIVATE_POWERUP: RuleEngine._activate_powerup,
    ActionType.DEACTIVATE_POWERUP: RuleEngine._deactivate_powerup,
    ActionType.PLAY_SOUND: RuleEngine._play_sound,
}


def _assert_exhaustive(table: Mapping[Enum, Any], kinds: type) -> None:
    missing = [kind.value for kind in kinds if kind not in table]
    if missing:
        raise RuntimeError(f"No handler registered for {kinds.__name__}: {', '.join(missing)}")


_assert_exhaustive(_CONDITION_HANDLERS, ConditionType)
_assert_exhaustive(_ACTION_HANDLERS, ActionType)
