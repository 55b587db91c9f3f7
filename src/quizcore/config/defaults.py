"""Ready-made game configuration used when no config file is given."""

from typing import Any, Dict, List

from ..core.event_types import GameEvent, ScoringEvent
from .powerup_catalog import get_standard_powerups


def default_rules(*, lives_mode: bool = False) -> List[Dict[str, Any]]:
    """Standard answer rules: time-weighted points for a correct answer, a buzz for a wrong one."""

    rules: List[Dict[str, Any]] = [
        {
            "id": "correct-answer-score",
            "description": "Award points per second left on the clock",
            "triggerEvent": GameEvent.ANSWER_SELECTED.value,
            "priority": 10,
            "conditions": [{"type": "compareState", "property": "isCorrect", "operator": "eq", "value": True}],
            "actions": [
                {
                    "type": "modifyScore",
                    "params": {"target": "payload.teamId", "mode": "progressive", "pointsPerSecond": 10},
                },
            ],
        },
        {
            "id": "wrong-answer-sound",
            "triggerEvent": GameEvent.ANSWER_SELECTED.value,
            "priority": 0,
            "conditions": [{"type": "compareState", "property": "isCorrect", "operator": "eq", "value": False}],
            "actions": [{"type": "playSound", "params": {"soundId": "buzzer"}}],
        },
    ]
    if lives_mode:
        rules.append(
            {
                "id": "wrong-answer-life",
                "triggerEvent": GameEvent.ANSWER_SELECTED.value,
                "priority": 5,
                "conditions": [{"type": "compareState", "property": "isCorrect", "operator": "eq", "value": False}],
                "actions": [{"type": "modifyLives", "params": {"target": "payload.teamId", "amount": -1}}],
            }
        )
        rules.append(
            {
                "id": "elimination-game-over",
                "triggerEvent": ScoringEvent.TEAM_ELIMINATED.value,
                "actions": [{"type": "changePhase", "params": {"newPhase": "game_over"}}],
            }
        )
    return rules


def demo_game_config(*, lives_mode: bool = False) -> Dict[str, Any]:
    """Two-team game using the standard power-ups."""

    game_mode: Dict[str, Any] = (
        {"type": "lives", "name": "Lives", "initialLives": 3, "maxLives": 5}
        if lives_mode
        else {"type": "score", "name": "Score"}
    )
    return {
        "quizId": "demo",
        "gameSlug": "multiple-choice",
        "teams": [
            {"id": "red", "name": "Red Team", "color": "#E53935"},
            {"id": "blue", "name": "Blue Team", "color": "#1E88E5"},
        ],
        "gameMode": game_mode,
        "rules": {"rules": default_rules(lives_mode=lives_mode)},
        "powerups": {
            "availablePowerups": [p.model_dump(by_alias=True, exclude_none=True) for p in get_standard_powerups()],
            "powerupsEnabled": True,
        },
        "intensityTimeLimit": 20,
        "questionHandling": {"distributionMode": "perTeam", "randomizeOrder": True, "truncateForFairness": True},
    }
